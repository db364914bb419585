"""Todo data model for Paperclip."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .recurring import RecurrencePattern
from .utils.datetime import ensure_aware, format_duration, from_iso_string, now_utc, to_iso_string


MIN_PRIORITY = 0
MAX_PRIORITY = 5


class TodoStatus(Enum):
    """Task status states."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def clamp_priority(priority: int) -> int:
    return max(MIN_PRIORITY, min(MAX_PRIORITY, int(priority)))


@dataclass
class TimeEntry:
    """A closed time tracking session."""
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def to_dict(self) -> Dict[str, Any]:
        return {"start": to_iso_string(self.start), "end": to_iso_string(self.end)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimeEntry':
        return cls(start=from_iso_string(data["start"]), end=from_iso_string(data["end"]))


@dataclass
class Todo:
    """A single task, optionally owning child todos by id."""

    # Core identification
    id: int
    description: str
    raw_description: str = ""  # Original input including #tag/@context markers

    # Status and completion
    status: TodoStatus = TodoStatus.PENDING
    completed_at: Optional[datetime] = None

    # Organization
    priority: int = 0  # 0-5, higher is more important
    tags: Set[str] = field(default_factory=set)
    contexts: Set[str] = field(default_factory=set)

    # Scheduling
    due_date: Optional[datetime] = None
    recurrence: Optional[RecurrencePattern] = None

    # Tree structure (ids only; the tree owns the objects)
    parent_id: Optional[int] = None
    children: List[int] = field(default_factory=list)
    expanded: bool = True

    # Notes and time tracking
    notes: Optional[str] = None
    time_spent: timedelta = field(default_factory=timedelta)
    time_entries: List[TimeEntry] = field(default_factory=list)
    timer_started: Optional[datetime] = None

    # Metadata
    created_at: datetime = field(default_factory=now_utc)
    template_id: Optional[str] = None

    def __post_init__(self):
        self.created_at = ensure_aware(self.created_at)
        self.completed_at = ensure_aware(self.completed_at)
        self.due_date = ensure_aware(self.due_date)
        self.timer_started = ensure_aware(self.timer_started)
        self.priority = clamp_priority(self.priority)
        self.tags = set(self.tags)
        self.contexts = set(self.contexts)
        if not self.raw_description:
            self.raw_description = self.description

    @property
    def completed(self) -> bool:
        return self.status == TodoStatus.COMPLETED

    def complete(self, now: datetime):
        """Mark the task as completed."""
        self.status = TodoStatus.COMPLETED
        self.completed_at = now

    def reopen(self):
        """Reopen a completed task."""
        self.status = TodoStatus.PENDING
        self.completed_at = None

    def toggle_complete(self, now: datetime):
        if self.completed:
            self.reopen()
        else:
            self.complete(now)

    def is_overdue(self, now: datetime) -> bool:
        """Check if the task is overdue."""
        if self.due_date and not self.completed:
            return now > self.due_date
        return False

    # Time tracking

    def is_timer_running(self) -> bool:
        return self.timer_started is not None

    def start_timer(self, now: datetime):
        """Start a tracking session; a pending task becomes in progress."""
        if self.timer_started is None:
            self.timer_started = now
            if self.status == TodoStatus.PENDING:
                self.status = TodoStatus.IN_PROGRESS

    def stop_timer(self, now: datetime):
        """Close the running session and add it to the accumulated time."""
        if self.timer_started is not None:
            entry = TimeEntry(start=self.timer_started, end=now)
            self.time_entries.append(entry)
            self.time_spent += entry.duration
            self.timer_started = None

    def elapsed(self, now: datetime) -> timedelta:
        """Total tracked time, including a running session up to now."""
        total = self.time_spent
        if self.timer_started is not None:
            total += max(timedelta(0), now - self.timer_started)
        return total

    def elapsed_formatted(self, now: datetime) -> str:
        return format_duration(self.elapsed(now))

    # Notes and recurrence

    def has_notes(self) -> bool:
        return bool(self.notes and self.notes.strip())

    def is_recurring(self) -> bool:
        return self.recurrence is not None

    def next_due_date(self) -> Optional[datetime]:
        """Due date of the successor of a recurring todo."""
        if self.recurrence is None or self.due_date is None:
            return None
        return self.recurrence.next_occurrence(self.due_date)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the Todo to a dictionary with timezone-aware ISO strings."""
        return {
            "id": self.id,
            "description": self.description,
            "raw_description": self.raw_description,
            "status": self.status.value,
            "completed_at": to_iso_string(self.completed_at),
            "priority": self.priority,
            "tags": sorted(self.tags),
            "contexts": sorted(self.contexts),
            "due_date": to_iso_string(self.due_date),
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
            "parent_id": self.parent_id,
            "children": list(self.children),
            "expanded": self.expanded,
            "notes": self.notes,
            "time_spent": self.time_spent.total_seconds(),
            "time_entries": [entry.to_dict() for entry in self.time_entries],
            "timer_started": to_iso_string(self.timer_started),
            "created_at": to_iso_string(self.created_at),
            "template_id": self.template_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Todo':
        """Create a Todo from a dictionary."""
        recurrence = data.get("recurrence")
        return cls(
            id=data["id"],
            description=data.get("description", ""),
            raw_description=data.get("raw_description", ""),
            status=TodoStatus(data.get("status", "pending")),
            completed_at=from_iso_string(data.get("completed_at")),
            priority=data.get("priority", 0),
            tags=set(data.get("tags", [])),
            contexts=set(data.get("contexts", [])),
            due_date=from_iso_string(data.get("due_date")),
            recurrence=RecurrencePattern.from_dict(recurrence) if recurrence else None,
            parent_id=data.get("parent_id"),
            children=list(data.get("children", [])),
            expanded=data.get("expanded", True),
            notes=data.get("notes"),
            time_spent=timedelta(seconds=data.get("time_spent", 0)),
            time_entries=[TimeEntry.from_dict(e) for e in data.get("time_entries", [])],
            timer_started=from_iso_string(data.get("timer_started")),
            created_at=from_iso_string(data.get("created_at")) or now_utc(),
            template_id=data.get("template_id"),
        )
