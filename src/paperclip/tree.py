"""
Hierarchical todo storage for a single workspace.

Todos live in an id-keyed arena. Parents and children refer to each other by
id, roots keep their display order in ``roots`` and ids are handed out from a
counter that never goes backwards, so a deleted id is never reused.
"""

import copy
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .exceptions import (
    CycleDetectedError,
    InvalidFieldError,
    InvalidParentError,
    TodoNotFoundError,
)
from .todo import Todo, clamp_priority


logger = logging.getLogger(__name__)


# Fields that set_field may change. Tree links and ids are owned by the tree.
MUTABLE_FIELDS = {
    'description',
    'raw_description',
    'status',
    'completed_at',
    'priority',
    'tags',
    'contexts',
    'due_date',
    'recurrence',
    'expanded',
    'notes',
    'time_spent',
    'time_entries',
    'timer_started',
    'template_id',
}


class DueDateFilter(Enum):
    """Due date buckets used by list views."""
    OVERDUE = "overdue"
    TODAY = "today"
    TOMORROW = "tomorrow"
    THIS_WEEK = "this_week"
    NO_DUE_DATE = "none"


class ChildrenView(Sequence):
    """Read-only view over the ordered child ids of a todo (or the roots).

    The view reads the live list on every access, so it always reflects the
    current tree and can be iterated any number of times.
    """

    def __init__(self, tree: 'TodoTree', parent_id: Optional[int]):
        self._tree = tree
        self._parent_id = parent_id

    def _ids(self) -> List[int]:
        return self._tree._child_list(self._parent_id)

    def __getitem__(self, index):
        return self._ids()[index]

    def __len__(self) -> int:
        return len(self._ids())

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._ids()))

    def __repr__(self) -> str:
        return f"ChildrenView(parent={self._parent_id}, ids={self._ids()})"


class TodoTree:
    """An ordered forest of todos addressed by integer id."""

    def __init__(self):
        self.todos: Dict[int, Todo] = {}
        self.roots: List[int] = []
        self.next_id = 1

    def __contains__(self, todo_id: object) -> bool:
        return todo_id in self.todos

    def __len__(self) -> int:
        return len(self.todos)

    def get(self, todo_id: int) -> Todo:
        """Return the todo with the given id.

        Raises:
            TodoNotFoundError: If no such todo exists
        """
        try:
            return self.todos[todo_id]
        except KeyError:
            raise TodoNotFoundError(todo_id) from None

    # Structure

    def _child_list(self, parent_id: Optional[int]) -> List[int]:
        if parent_id is None:
            return self.roots
        return self.get(parent_id).children

    def children_of(self, todo_id: Optional[int]) -> ChildrenView:
        """Ordered child ids of a todo; None gives the root todos."""
        if todo_id is not None:
            self.get(todo_id)
        return ChildrenView(self, todo_id)

    def position_of(self, todo_id: int) -> Tuple[Optional[int], int]:
        """Return (parent_id, index among siblings) for a todo."""
        todo = self.get(todo_id)
        return todo.parent_id, self._child_list(todo.parent_id).index(todo_id)

    def depth(self, todo_id: int) -> int:
        depth = 0
        todo = self.get(todo_id)
        while todo.parent_id is not None:
            depth += 1
            todo = self.todos[todo.parent_id]
        return depth

    def descendants(self, todo_id: int) -> List[int]:
        """Ids of every todo below todo_id, in depth-first order."""
        result = []
        stack = list(reversed(self.get(todo_id).children))
        while stack:
            current = stack.pop()
            result.append(current)
            stack.extend(reversed(self.todos[current].children))
        return result

    def _attach(self, todo_id: int, parent_id: Optional[int], position: Optional[int]):
        siblings = self._child_list(parent_id)
        if position is None or position >= len(siblings):
            siblings.append(todo_id)
        else:
            siblings.insert(max(0, position), todo_id)
        self.todos[todo_id].parent_id = parent_id

    def _detach(self, todo_id: int) -> int:
        parent_id, index = self.position_of(todo_id)
        del self._child_list(parent_id)[index]
        return index

    # Mutations

    def create(self, parent_id: Optional[int], description: str,
               position: Optional[int] = None, **metadata: Any) -> int:
        """Create a todo under parent_id (None for a root) and return its id.

        Extra keyword arguments are passed through to Todo, for example
        ``tags``, ``due_date`` or ``priority``.

        Raises:
            InvalidParentError: If parent_id does not exist
        """
        if parent_id is not None and parent_id not in self.todos:
            raise InvalidParentError(parent_id)

        todo_id = self.next_id
        todo = Todo(id=todo_id, description=description, parent_id=parent_id, **metadata)
        self.next_id += 1
        self.todos[todo_id] = todo
        self._attach(todo_id, parent_id, position)
        logger.debug(f"Created todo {todo_id} under {parent_id}")
        return todo_id

    def delete(self, todo_id: int) -> Set[int]:
        """Remove a todo and its whole subtree; return the removed ids."""
        self.get(todo_id)
        removed = {todo_id, *self.descendants(todo_id)}
        self._detach(todo_id)
        for removed_id in removed:
            del self.todos[removed_id]
        logger.debug(f"Deleted todo {todo_id} with {len(removed) - 1} descendants")
        return removed

    def move(self, todo_id: int, new_parent_id: Optional[int], position: Optional[int] = None):
        """Reparent and/or reorder a todo.

        ``position`` is the todo's index among its new siblings once moved;
        None appends it. Moving within the same parent reorders.

        Raises:
            TodoNotFoundError: If todo_id does not exist
            InvalidParentError: If new_parent_id does not exist
            CycleDetectedError: If new_parent_id is todo_id or one of its descendants
        """
        self.get(todo_id)
        if new_parent_id is not None:
            if new_parent_id not in self.todos:
                raise InvalidParentError(new_parent_id)
            if new_parent_id == todo_id or new_parent_id in self.descendants(todo_id):
                raise CycleDetectedError(todo_id, new_parent_id)

        self._detach(todo_id)
        self._attach(todo_id, new_parent_id, position)

    def set_field(self, todo_id: int, field_name: str, value: Any) -> Any:
        """Set a mutable field and return its previous value."""
        todo = self.get(todo_id)
        if field_name not in MUTABLE_FIELDS:
            raise InvalidFieldError(field_name)

        previous = copy.copy(getattr(todo, field_name))
        if field_name in ('tags', 'contexts'):
            value = set(value)
        elif field_name == 'time_entries':
            value = list(value)
        elif field_name == 'priority':
            value = clamp_priority(value)
        setattr(todo, field_name, value)
        return previous

    def toggle_complete(self, todo_id: int, now: datetime):
        """Flip completion of one todo. Children are not touched."""
        self.get(todo_id).toggle_complete(now)

    # Snapshots used by commands to undo structural changes

    def snapshot_subtree(self, todo_id: int) -> List[Todo]:
        """Deep copies of a todo and its descendants, root first."""
        ids = [todo_id, *self.descendants(todo_id)]
        return [copy.deepcopy(self.todos[i]) for i in ids]

    def restore_subtree(self, snapshot: List[Todo], position: Optional[int] = None):
        """Put a snapshot taken by snapshot_subtree back into the tree.

        The root of the snapshot is attached to its recorded parent at
        ``position``. Ids are restored exactly as recorded.
        """
        root = snapshot[0]
        if root.parent_id is not None and root.parent_id not in self.todos:
            raise InvalidParentError(root.parent_id)

        for todo in snapshot:
            self.todos[todo.id] = copy.deepcopy(todo)
        self._attach(root.id, root.parent_id, position)
        self.next_id = max(self.next_id, max(t.id for t in snapshot) + 1)

    # Traversal

    def flatten(self, root: Optional[int] = None,
                include_collapsed: bool = False) -> Iterator[Tuple[Todo, int]]:
        """Yield (todo, depth) in depth-first display order.

        With ``root`` the walk starts at that todo (depth 0); otherwise it
        covers every root. Children of collapsed todos are skipped unless
        ``include_collapsed`` is set.
        """
        if root is None:
            stack = [(todo_id, 0) for todo_id in reversed(self.roots)]
        else:
            self.get(root)
            stack = [(root, 0)]

        while stack:
            todo_id, depth = stack.pop()
            todo = self.todos[todo_id]
            yield todo, depth
            if todo.expanded or include_collapsed:
                stack.extend((child, depth + 1) for child in reversed(todo.children))

    def _all(self) -> Iterator[Todo]:
        for todo, _ in self.flatten(include_collapsed=True):
            yield todo

    # Queries

    def search(self, query: str) -> List[Todo]:
        """Case-insensitive match against description, notes and tags."""
        needle = query.lower().strip()
        results = []
        for todo in self._all():
            haystack = [todo.description, todo.notes or "", *todo.tags, *todo.contexts]
            if any(needle in text.lower() for text in haystack):
                results.append(todo)
        return results

    def with_tag(self, tag: str) -> List[Todo]:
        tag = tag.lower().lstrip('#')
        return [todo for todo in self._all() if tag in todo.tags]

    def with_context(self, context: str) -> List[Todo]:
        context = context.lower().lstrip('@')
        return [todo for todo in self._all() if context in todo.contexts]

    def pending(self) -> List[Todo]:
        return [todo for todo in self._all() if not todo.completed]

    def completed(self) -> List[Todo]:
        return [todo for todo in self._all() if todo.completed]

    def by_due(self, due_filter: DueDateFilter, now: datetime) -> List[Todo]:
        """Todos whose due date falls in the given bucket, relative to now."""
        today = now.date()
        results = []
        for todo in self._all():
            if due_filter == DueDateFilter.NO_DUE_DATE:
                if todo.due_date is None:
                    results.append(todo)
                continue
            if todo.due_date is None:
                continue

            due_day = todo.due_date.astimezone(now.tzinfo).date()
            if due_filter == DueDateFilter.OVERDUE:
                matched = todo.is_overdue(now)
            elif due_filter == DueDateFilter.TODAY:
                matched = due_day == today
            elif due_filter == DueDateFilter.TOMORROW:
                matched = due_day == today + timedelta(days=1)
            else:
                matched = today <= due_day < today + timedelta(days=7)
            if matched:
                results.append(todo)
        return results

    def all_tags(self) -> List[str]:
        return sorted(self.tag_counts())

    def all_contexts(self) -> List[str]:
        return sorted(self.context_counts())

    def tag_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for todo in self._all():
            for tag in todo.tags:
                counts[tag] = counts.get(tag, 0) + 1
        return counts

    def context_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for todo in self._all():
            for context in todo.contexts:
                counts[context] = counts.get(context, 0) + 1
        return counts

    def overdue_count(self, now: datetime) -> int:
        return len(self.by_due(DueDateFilter.OVERDUE, now))

    def due_today_count(self, now: datetime) -> int:
        return sum(1 for todo in self.by_due(DueDateFilter.TODAY, now) if not todo.completed)

    def active_timers(self) -> List[Todo]:
        return [todo for todo in self._all() if todo.is_timer_running()]

    # Persistence

    def to_dict(self) -> Dict[str, Any]:
        return {
            'next_id': self.next_id,
            'roots': list(self.roots),
            'todos': [todo.to_dict() for todo in self._all()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TodoTree':
        """Rebuild a tree from to_dict output.

        Raises:
            ValueError: If the snapshot references todos it does not contain,
                or its parent links do not form a tree
        """
        tree = cls()
        for item in data.get('todos', []):
            todo = Todo.from_dict(item)
            tree.todos[todo.id] = todo
        tree.roots = list(data.get('roots', []))

        for todo in tree.todos.values():
            missing = [c for c in todo.children if c not in tree.todos]
            if missing:
                raise ValueError(f"Todo {todo.id} references missing children {missing}")
        missing_roots = [r for r in tree.roots if r not in tree.todos]
        if missing_roots:
            raise ValueError(f"Snapshot references missing root todos {missing_roots}")
        tree._check_structure()

        highest = max(tree.todos, default=0)
        tree.next_id = max(data.get('next_id', 1), highest + 1)
        return tree

    def _check_structure(self):
        """Every todo must be reachable from the roots exactly once, under its recorded parent."""
        seen: Set[int] = set()
        stack = [(root_id, None) for root_id in reversed(self.roots)]
        while stack:
            todo_id, parent_id = stack.pop()
            if todo_id in seen:
                raise ValueError(f"Todo {todo_id} appears more than once in the tree")
            seen.add(todo_id)
            todo = self.todos[todo_id]
            if todo.parent_id != parent_id:
                raise ValueError(f"Todo {todo_id} records parent {todo.parent_id} but sits under {parent_id}")
            stack.extend((child_id, todo_id) for child_id in reversed(todo.children))

        unreachable = sorted(set(self.todos) - seen)
        if unreachable:
            raise ValueError(f"Todos {unreachable} are not reachable from the roots")
