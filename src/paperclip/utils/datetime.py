"""Datetime utilities with consistent timezone handling.

This module provides centralized datetime functions so that every datetime
stored on a todo is timezone-aware. The current time is always read through a
Clock so that callers can inject a fixed one.
"""

from datetime import datetime, time, timedelta, timezone
from typing import Callable, Optional


Clock = Callable[[], datetime]


def now_utc() -> datetime:
    """Return current datetime in UTC timezone.

    Returns:
        Current datetime with timezone=UTC
    """
    return datetime.now(timezone.utc)


def now_local() -> datetime:
    """Return current datetime in the local timezone.

    This is the default Clock; due dates are calendar days as the user
    sees them, so local time is what the parser needs.

    Returns:
        Current timezone-aware local datetime
    """
    return datetime.now().astimezone()


def fixed_clock(moment: datetime) -> Clock:
    """Return a Clock that always reports the same moment."""
    moment = ensure_aware(moment)
    return lambda: moment


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure datetime is timezone-aware, assuming UTC if naive.

    Args:
        dt: Datetime to check/convert, or None

    Returns:
        Timezone-aware datetime, or None if input was None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    return dt


def at_time(dt: datetime, moment: time) -> datetime:
    """Return dt's calendar day at the given wall-clock time, keeping tzinfo."""
    return dt.replace(
        hour=moment.hour,
        minute=moment.minute,
        second=moment.second,
        microsecond=0,
    )


def parse_time_of_day(value: str) -> time:
    """Parse 'HH:MM' or 'HH:MM:SS' into a time."""
    parts = [int(p) for p in value.strip().split(":")]
    if len(parts) == 2:
        parts.append(0)
    if len(parts) != 3:
        raise ValueError(f"Invalid time of day: {value}")
    return time(parts[0], parts[1], parts[2])


def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
    """Convert datetime to ISO string with timezone info.

    Args:
        dt: Datetime to convert, or None

    Returns:
        ISO format string with timezone, or None if input was None
    """
    if dt is None:
        return None

    aware_dt = ensure_aware(dt)
    return aware_dt.isoformat()


def from_iso_string(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO string written by to_iso_string.

    Raises:
        ValueError: If the string is not ISO formatted
    """
    if not value:
        return None
    return ensure_aware(datetime.fromisoformat(value))


def format_duration(duration: timedelta) -> str:
    """Format a duration as '1h 5m' or '5m'."""
    total_seconds = max(0, int(duration.total_seconds()))
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
