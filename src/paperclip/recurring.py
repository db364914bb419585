"""
Recurrence rules for Paperclip.

A recurring todo carries a RecurrencePattern. When it is completed, the session
spawns a successor whose due date is the pattern's next occurrence.
"""

import re
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


WEEKDAY_NAMES = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']


class RecurrenceType(Enum):
    """Types of recurrence patterns"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"  # Every N days


@dataclass
class RecurrencePattern:
    """Defines a recurrence pattern for todos"""
    type: RecurrenceType
    interval: int = 1  # Every N days/weeks/months/years
    days_of_week: List[int] = field(default_factory=list)  # 0=Monday, 6=Sunday

    def __post_init__(self):
        if self.interval < 1:
            raise ValueError(f"Recurrence interval must be positive, got {self.interval}")
        self.days_of_week = sorted(set(self.days_of_week))

    def next_occurrence(self, from_date: datetime) -> datetime:
        """Calculate the occurrence following from_date."""
        if self.type == RecurrenceType.DAILY or self.type == RecurrenceType.CUSTOM:
            return from_date + timedelta(days=self.interval)
        elif self.type == RecurrenceType.WEEKLY:
            return self._next_weekly_occurrence(from_date)
        elif self.type == RecurrenceType.MONTHLY:
            return add_months(from_date, self.interval)
        return add_months(from_date, 12 * self.interval)

    def _next_weekly_occurrence(self, from_date: datetime) -> datetime:
        if not self.days_of_week:
            return from_date + timedelta(weeks=self.interval)

        current_weekday = from_date.weekday()

        # Find next occurrence within current week
        for day in self.days_of_week:
            if day > current_weekday:
                return from_date + timedelta(days=day - current_weekday)

        # Move to next week(s) and take the first target day
        days_ahead = (self.days_of_week[0] - current_weekday) + (7 * self.interval)
        return from_date + timedelta(days=days_ahead)

    def describe(self) -> str:
        """Convert pattern back to its canonical phrase."""
        if self.type == RecurrenceType.DAILY:
            return "daily" if self.interval == 1 else f"every {self.interval} days"
        elif self.type == RecurrenceType.CUSTOM:
            return f"every {self.interval} days"
        elif self.type == RecurrenceType.WEEKLY:
            if self.days_of_week:
                days = [WEEKDAY_NAMES[d] for d in self.days_of_week]
                return f"every {', '.join(days)}"
            return "weekly" if self.interval == 1 else f"every {self.interval} weeks"
        elif self.type == RecurrenceType.MONTHLY:
            return "monthly" if self.interval == 1 else f"every {self.interval} months"
        return "yearly" if self.interval == 1 else f"every {self.interval} years"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'interval': self.interval,
            'days_of_week': list(self.days_of_week),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecurrencePattern':
        return cls(
            type=RecurrenceType(data.get('type', 'daily')),
            interval=data.get('interval', 1),
            days_of_week=data.get('days_of_week', []),
        )


def add_months(date: datetime, months: int) -> datetime:
    """Add months to a date, clamping the day to the target month's length."""
    month = date.month - 1 + months
    year = date.year + month // 12
    month = month % 12 + 1
    day = min(date.day, monthrange(year, month)[1])
    return date.replace(year=year, month=month, day=day)


def weekday_number(day_name: str) -> int:
    """Convert day name to number (0=Monday)"""
    return WEEKDAY_NAMES.index(day_name.lower())


class RecurrenceParser:
    """Parses natural language recurrence patterns"""

    PATTERNS = {
        r'^daily$': (RecurrenceType.DAILY, {'interval': 1}),
        r'^every day$': (RecurrenceType.DAILY, {'interval': 1}),
        r'^every (\d+) days?$': (RecurrenceType.CUSTOM, lambda m: {'interval': int(m.group(1))}),

        r'^weekly$': (RecurrenceType.WEEKLY, {'interval': 1}),
        r'^every week$': (RecurrenceType.WEEKLY, {'interval': 1}),
        r'^every (\d+) weeks?$': (RecurrenceType.WEEKLY, lambda m: {'interval': int(m.group(1))}),
        r'^every (monday|tuesday|wednesday|thursday|friday|saturday|sunday)$':
            (RecurrenceType.WEEKLY, lambda m: {'days_of_week': [weekday_number(m.group(1))]}),
        r'^weekdays$': (RecurrenceType.WEEKLY, {'days_of_week': [0, 1, 2, 3, 4]}),
        r'^weekends$': (RecurrenceType.WEEKLY, {'days_of_week': [5, 6]}),

        r'^monthly$': (RecurrenceType.MONTHLY, {'interval': 1}),
        r'^every month$': (RecurrenceType.MONTHLY, {'interval': 1}),
        r'^every (\d+) months?$': (RecurrenceType.MONTHLY, lambda m: {'interval': int(m.group(1))}),

        r'^yearly$': (RecurrenceType.YEARLY, {'interval': 1}),
        r'^annually$': (RecurrenceType.YEARLY, {'interval': 1}),
        r'^every year$': (RecurrenceType.YEARLY, {'interval': 1}),
        r'^every (\d+) years?$': (RecurrenceType.YEARLY, lambda m: {'interval': int(m.group(1))}),
    }

    @classmethod
    def parse(cls, pattern_str: str) -> Optional[RecurrencePattern]:
        """Parse a natural language recurrence pattern, or return None."""
        pattern_str = ' '.join(pattern_str.lower().replace('_', ' ').split())

        for regex, (rec_type, params) in cls.PATTERNS.items():
            match = re.match(regex, pattern_str)
            if match:
                if callable(params):
                    params = params(match)
                try:
                    return RecurrencePattern(type=rec_type, **params)
                except ValueError:
                    # "every 0 days"
                    return None

        return None
