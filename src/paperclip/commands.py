"""
Undoable commands over a TodoTree.

Every change to a tree is expressed as one of the command dataclasses below.
A command validates before it mutates, so a failing ``apply`` leaves the tree
as it was. The first ``apply`` records whatever is needed to invert it (ids,
timestamps, previous values), which makes undo followed by redo reproduce the
exact same state.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Union

from .exceptions import InvalidFieldError, NothingToRedoError, NothingToUndoError
from .recurring import RecurrencePattern
from .template import TodoTemplate
from .todo import Todo
from .tree import MUTABLE_FIELDS, TodoTree


logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


def _short(text: str, width: int = 40) -> str:
    return text if len(text) <= width else text[:width - 3] + "..."


@dataclass
class AddTodo:
    """Create a todo, as a root or under a parent."""
    description: str
    parent_id: Optional[int] = None
    position: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    todo_id: Optional[int] = None
    _snapshot: Optional[List[Todo]] = field(default=None, repr=False)
    _index: Optional[int] = field(default=None, repr=False)

    def apply(self, tree: TodoTree):
        if self._snapshot is None:
            self.todo_id = tree.create(
                self.parent_id, self.description, position=self.position, **self.metadata
            )
            _, self._index = tree.position_of(self.todo_id)
            self._snapshot = tree.snapshot_subtree(self.todo_id)
        else:
            tree.restore_subtree(self._snapshot, self._index)

    def revert(self, tree: TodoTree):
        tree.delete(self.todo_id)

    def describe(self) -> str:
        return f"Add '{_short(self.description)}'"


@dataclass
class DeleteTodo:
    """Remove a todo together with its subtree."""
    todo_id: int
    _snapshot: Optional[List[Todo]] = field(default=None, repr=False)
    _index: Optional[int] = field(default=None, repr=False)
    _description: str = field(default="", repr=False)

    def apply(self, tree: TodoTree):
        snapshot = tree.snapshot_subtree(self.todo_id)
        _, index = tree.position_of(self.todo_id)
        tree.delete(self.todo_id)
        self._snapshot = snapshot
        self._index = index
        self._description = snapshot[0].description

    def revert(self, tree: TodoTree):
        tree.restore_subtree(self._snapshot, self._index)

    def describe(self) -> str:
        extra = len(self._snapshot) - 1 if self._snapshot else 0
        suffix = f" and {extra} subtask(s)" if extra else ""
        return f"Delete '{_short(self._description)}'{suffix}"


@dataclass
class ToggleComplete:
    """Flip completion of a single todo.

    Completing a recurring todo that has a due date also inserts its successor
    right after it, unless ``spawn_recurring`` is off.
    """
    todo_id: int
    now: datetime
    spawn_recurring: bool = True
    successor_id: Optional[int] = None
    _previous: Optional[Dict[str, Any]] = field(default=None, repr=False)
    _successor: Optional[List[Todo]] = field(default=None, repr=False)
    _successor_index: Optional[int] = field(default=None, repr=False)

    def apply(self, tree: TodoTree):
        todo = tree.get(self.todo_id)
        previous = {'status': todo.status, 'completed_at': todo.completed_at}
        first_apply = self._previous is None

        next_due = None
        if first_apply and not todo.completed and self.spawn_recurring:
            next_due = self._next_due(todo)

        tree.toggle_complete(self.todo_id, self.now)
        self._previous = previous

        if not todo.completed:
            return
        if first_apply:
            if next_due is not None:
                self._spawn_successor(tree, todo, next_due)
        elif self._successor is not None:
            tree.restore_subtree(self._successor, self._successor_index)

    @staticmethod
    def _next_due(todo: Todo) -> Optional[datetime]:
        try:
            return todo.next_due_date()
        except (OverflowError, ValueError):
            raise ValueError(f"Next occurrence of todo {todo.id} is out of range") from None

    def _spawn_successor(self, tree: TodoTree, todo: Todo, next_due: datetime):
        parent_id, index = tree.position_of(todo.id)
        self.successor_id = tree.create(
            parent_id,
            todo.description,
            position=index + 1,
            raw_description=todo.raw_description,
            priority=todo.priority,
            tags=set(todo.tags),
            contexts=set(todo.contexts),
            due_date=next_due,
            recurrence=copy.deepcopy(todo.recurrence),
            notes=todo.notes,
            expanded=todo.expanded,
            created_at=self.now,
            template_id=todo.template_id,
        )
        self._successor_index = index + 1
        self._successor = tree.snapshot_subtree(self.successor_id)
        logger.debug(f"Spawned successor {self.successor_id} of recurring todo {todo.id} due {next_due}")

    def revert(self, tree: TodoTree):
        if self.successor_id is not None and self.successor_id in tree:
            tree.delete(self.successor_id)
        for name, value in self._previous.items():
            tree.set_field(self.todo_id, name, value)

    def describe(self) -> str:
        if self._previous is not None and self._previous['completed_at'] is not None:
            return f"Reopen todo {self.todo_id}"
        return f"Complete todo {self.todo_id}"


@dataclass
class MoveTodo:
    """Reparent or reorder a todo."""
    todo_id: int
    new_parent_id: Optional[int] = None
    position: Optional[int] = None
    _old_parent_id: Optional[int] = field(default=None, repr=False)
    _old_index: Optional[int] = field(default=None, repr=False)

    def apply(self, tree: TodoTree):
        old_parent_id, old_index = tree.position_of(self.todo_id)
        tree.move(self.todo_id, self.new_parent_id, self.position)
        self._old_parent_id = old_parent_id
        self._old_index = old_index

    def revert(self, tree: TodoTree):
        tree.move(self.todo_id, self._old_parent_id, self._old_index)

    def describe(self) -> str:
        target = "top level" if self.new_parent_id is None else f"todo {self.new_parent_id}"
        return f"Move todo {self.todo_id} to {target}"


class FieldCommand:
    """Base for commands that only overwrite todo fields.

    Subclasses implement ``changes()`` returning the new field values.
    """

    todo_id: int

    def changes(self) -> Dict[str, Any]:
        raise NotImplementedError

    def apply(self, tree: TodoTree):
        tree.get(self.todo_id)
        changes = self.changes()
        for name in changes:
            if name not in MUTABLE_FIELDS:
                raise InvalidFieldError(name)
        self._previous = {
            name: tree.set_field(self.todo_id, name, value)
            for name, value in changes.items()
        }

    def revert(self, tree: TodoTree):
        for name, value in self._previous.items():
            tree.set_field(self.todo_id, name, value)


@dataclass
class EditDescription(FieldCommand):
    """Replace the description along with the metadata parsed from it."""
    todo_id: int
    description: str
    raw_description: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def changes(self) -> Dict[str, Any]:
        changes = {
            'description': self.description,
            'raw_description': self.raw_description or self.description,
        }
        changes.update(self.extra)
        return changes

    def describe(self) -> str:
        return f"Edit todo {self.todo_id}: '{_short(self.description)}'"


@dataclass
class SetPriority(FieldCommand):
    todo_id: int
    priority: int

    def changes(self) -> Dict[str, Any]:
        return {'priority': self.priority}

    def describe(self) -> str:
        return f"Set priority of todo {self.todo_id} to {self.priority}"


@dataclass
class SetTags(FieldCommand):
    """Replace tags and contexts."""
    todo_id: int
    tags: Set[str] = field(default_factory=set)
    contexts: Set[str] = field(default_factory=set)

    def changes(self) -> Dict[str, Any]:
        return {
            'tags': {t.lower() for t in self.tags},
            'contexts': {c.lower() for c in self.contexts},
        }

    def describe(self) -> str:
        return f"Set tags of todo {self.todo_id}"


@dataclass
class SetNote(FieldCommand):
    todo_id: int
    notes: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        notes = self.notes if self.notes and self.notes.strip() else None
        return {'notes': notes}

    def describe(self) -> str:
        if self.notes:
            return f"Set note on todo {self.todo_id}"
        return f"Clear note on todo {self.todo_id}"


@dataclass
class SetRecurrence(FieldCommand):
    todo_id: int
    recurrence: Optional[RecurrencePattern] = None

    def changes(self) -> Dict[str, Any]:
        return {'recurrence': self.recurrence}

    def describe(self) -> str:
        if self.recurrence is None:
            return f"Clear recurrence on todo {self.todo_id}"
        return f"Repeat todo {self.todo_id} {self.recurrence.describe()}"


@dataclass
class SetDueDate(FieldCommand):
    todo_id: int
    due_date: Optional[datetime] = None

    def changes(self) -> Dict[str, Any]:
        return {'due_date': self.due_date}

    def describe(self) -> str:
        if self.due_date is None:
            return f"Clear due date on todo {self.todo_id}"
        return f"Set due date of todo {self.todo_id} to {self.due_date:%Y-%m-%d %H:%M}"


@dataclass
class ToggleTimer(FieldCommand):
    """Start the timer on a todo, or stop it and record the session."""
    todo_id: int
    now: datetime
    _started: Optional[bool] = field(default=None, repr=False)

    def apply(self, tree: TodoTree):
        scratch = copy.deepcopy(tree.get(self.todo_id))
        self._started = not scratch.is_timer_running()
        if self._started:
            scratch.start_timer(self.now)
        else:
            scratch.stop_timer(self.now)

        self._previous = {
            name: tree.set_field(self.todo_id, name, getattr(scratch, name))
            for name in ('status', 'timer_started', 'time_spent', 'time_entries')
        }

    def describe(self) -> str:
        action = "Start" if self._started is not False else "Stop"
        return f"{action} timer on todo {self.todo_id}"


@dataclass
class ToggleExpanded(FieldCommand):
    """Collapse or expand a todo in the display."""
    todo_id: int
    _expanded: Optional[bool] = field(default=None, repr=False)

    def apply(self, tree: TodoTree):
        self._expanded = not tree.get(self.todo_id).expanded
        self._previous = {'expanded': tree.set_field(self.todo_id, 'expanded', self._expanded)}

    def describe(self) -> str:
        action = "Collapse" if self._expanded is False else "Expand"
        return f"{action} todo {self.todo_id}"


@dataclass
class ApplyTemplate(FieldCommand):
    """Overwrite tags, contexts, priority, recurrence and notes from a template."""
    todo_id: int
    template: TodoTemplate

    def changes(self) -> Dict[str, Any]:
        return {
            'tags': set(self.template.tags),
            'contexts': set(self.template.contexts),
            'priority': self.template.priority,
            'recurrence': copy.deepcopy(self.template.recurrence),
            'notes': self.template.notes,
            'template_id': self.template.id,
        }

    def describe(self) -> str:
        return f"Apply template '{self.template.name}' to todo {self.todo_id}"


AnyCommand = Union[
    AddTodo,
    DeleteTodo,
    ToggleComplete,
    EditDescription,
    MoveTodo,
    SetPriority,
    SetTags,
    SetNote,
    SetRecurrence,
    SetDueDate,
    ToggleTimer,
    ToggleExpanded,
    ApplyTemplate,
]


class CommandHistory:
    """Bounded undo/redo history for one tree.

    Commands before the cursor can be undone; commands from the cursor on can
    be redone. Executing a new command discards the redo part. When the
    history is full the oldest command is dropped.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_LIMIT):
        if capacity < 1:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._commands: List[AnyCommand] = []
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._commands)

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._commands)

    def execute(self, command: AnyCommand, tree: TodoTree) -> AnyCommand:
        """Apply a command and record it. Nothing is recorded if apply raises."""
        command.apply(tree)
        del self._commands[self._cursor:]
        self._commands.append(command)
        if len(self._commands) > self.capacity:
            del self._commands[0]
        self._cursor = len(self._commands)
        logger.debug(f"Executed: {command.describe()}")
        return command

    def undo(self, tree: TodoTree) -> AnyCommand:
        if not self.can_undo:
            raise NothingToUndoError()
        command = self._commands[self._cursor - 1]
        command.revert(tree)
        self._cursor -= 1
        logger.debug(f"Undid: {command.describe()}")
        return command

    def redo(self, tree: TodoTree) -> AnyCommand:
        if not self.can_redo:
            raise NothingToRedoError()
        command = self._commands[self._cursor]
        command.apply(tree)
        self._cursor += 1
        logger.debug(f"Redid: {command.describe()}")
        return command

    def clear(self):
        self._commands.clear()
        self._cursor = 0
