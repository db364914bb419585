"""
Application session for Paperclip.

TodoSession ties together the workspace store, the clock, the text parsers,
templates and persistence. Every change it makes goes through
``WorkspaceStore.execute`` so that it can be undone.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .commands import (
    AddTodo,
    AnyCommand,
    ApplyTemplate,
    DeleteTodo,
    EditDescription,
    MoveTodo,
    SetDueDate,
    SetNote,
    SetPriority,
    SetRecurrence,
    SetTags,
    ToggleComplete,
    ToggleExpanded,
    ToggleTimer,
)
from .config import ConfigModel
from .exceptions import DateParseError
from .parser import DateExpressionParser, DescriptionParser, ParsedDescription
from .recurring import RecurrenceParser
from .storage import Storage
from .template import TemplateManager
from .todo import Todo, clamp_priority
from .tree import DueDateFilter, TodoTree
from .utils.datetime import Clock, now_local
from .workspace import Workspace, WorkspaceStore


logger = logging.getLogger(__name__)


class ViewKind(Enum):
    ALL = "all"
    PENDING = "pending"
    COMPLETED = "completed"
    SEARCH = "search"
    TAG = "tag"
    CONTEXT = "context"
    DUE = "due"


@dataclass(frozen=True)
class View:
    """What the list display shows. SEARCH, TAG, CONTEXT and DUE carry an argument."""
    kind: ViewKind = ViewKind.ALL
    argument: Any = None

    @classmethod
    def all(cls) -> 'View':
        return cls(ViewKind.ALL)

    @classmethod
    def pending(cls) -> 'View':
        return cls(ViewKind.PENDING)

    @classmethod
    def completed(cls) -> 'View':
        return cls(ViewKind.COMPLETED)

    @classmethod
    def search(cls, query: str) -> 'View':
        return cls(ViewKind.SEARCH, query)

    @classmethod
    def tag(cls, tag: str) -> 'View':
        return cls(ViewKind.TAG, tag)

    @classmethod
    def context(cls, context: str) -> 'View':
        return cls(ViewKind.CONTEXT, context)

    @classmethod
    def due(cls, due_filter: DueDateFilter) -> 'View':
        return cls(ViewKind.DUE, due_filter)


@dataclass
class ActionResult:
    """Outcome of a text-driven action such as add or edit."""
    todo_id: Optional[int]
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)


class TodoSession:
    """High-level operations used by the CLI and the shell."""

    def __init__(self, config: ConfigModel, store: WorkspaceStore, clock: Clock = now_local,
                 storage: Optional[Storage] = None, templates: Optional[TemplateManager] = None):
        self.config = config
        self.store = store
        self.clock = clock
        self.storage = storage
        self.templates = templates or TemplateManager()
        self.date_parser = DateExpressionParser(
            end_of_day=config.end_of_day_time,
            first_day_of_week=config.first_day_of_week,
        )
        self.description_parser = DescriptionParser(self.date_parser)
        self.store.ensure_default(config.default_workspace, created_at=clock())

    @classmethod
    def open(cls, config: ConfigModel, clock: Clock = now_local) -> 'TodoSession':
        """Build a session from the data directory named in config."""
        storage = Storage(config)
        store = storage.load()
        templates = TemplateManager(config.get_templates_path())
        templates.load()
        return cls(config, store, clock=clock, storage=storage, templates=templates)

    @property
    def workspace(self) -> Workspace:
        return self.store.active()

    @property
    def tree(self) -> TodoTree:
        return self.store.active().tree

    def get(self, todo_id: int) -> Todo:
        return self.tree.get(todo_id)

    # Text parsing

    def _parse(self, text: str) -> Tuple[ParsedDescription, List[str]]:
        parsed = self.description_parser.parse(text, self.clock())
        warnings = []
        for error in parsed.errors:
            logger.warning(f"Unparseable due date '{error.text}' in '{text}'")
            if self.config.strict_due_dates:
                raise error
            message = f"Ignored due date '{error.text}'"
            if error.suggestions:
                message += ". " + " ".join(error.suggestions)
            warnings.append(message)
        if not parsed.description:
            raise ValueError("Todo description cannot be empty")
        return parsed, warnings

    def _suggest(self, text: str) -> List[str]:
        return self.description_parser.suggest_corrections(
            text, self.tree.all_tags(), self.tree.all_contexts()
        )

    # Todo actions

    def add(self, text: str, parent_id: Optional[int] = None) -> ActionResult:
        """Add a todo from text with inline #tags, @contexts, due:, ~priority and %recurrence."""
        parsed, warnings = self._parse(text)
        suggestions = self._suggest(text)

        metadata = {
            'raw_description': parsed.raw,
            'tags': parsed.tags,
            'contexts': parsed.contexts,
            'due_date': parsed.due_date,
            'priority': parsed.priority or 0,
            'recurrence': parsed.recurrence,
            'expanded': self.config.expand_new_todos,
            'created_at': self.clock(),
        }
        command = self.store.execute(AddTodo(parsed.description, parent_id, metadata=metadata))
        return ActionResult(command.todo_id, warnings, suggestions)

    def edit(self, todo_id: int, text: str) -> ActionResult:
        """Replace a todo's text.

        Tags and contexts are replaced by those in the new text. Due date,
        priority and recurrence change only when the text names them.
        """
        self.tree.get(todo_id)
        parsed, warnings = self._parse(text)
        suggestions = self._suggest(text)

        extra: Dict[str, Any] = {'tags': parsed.tags, 'contexts': parsed.contexts}
        if parsed.due_date is not None:
            extra['due_date'] = parsed.due_date
        if parsed.priority is not None:
            extra['priority'] = parsed.priority
        if parsed.recurrence is not None:
            extra['recurrence'] = parsed.recurrence

        self.store.execute(EditDescription(todo_id, parsed.description, parsed.raw, extra))
        return ActionResult(todo_id, warnings, suggestions)

    def toggle_complete(self, todo_id: int) -> ToggleComplete:
        command = ToggleComplete(todo_id, self.clock(), spawn_recurring=self.config.spawn_recurring)
        return self.store.execute(command)

    def delete(self, todo_id: int) -> DeleteTodo:
        return self.store.execute(DeleteTodo(todo_id))

    def move(self, todo_id: int, parent_id: Optional[int], position: Optional[int] = None) -> MoveTodo:
        return self.store.execute(MoveTodo(todo_id, parent_id, position))

    def set_priority(self, todo_id: int, priority: int) -> SetPriority:
        return self.store.execute(SetPriority(todo_id, clamp_priority(priority)))

    def bump_priority(self, todo_id: int, delta: int) -> SetPriority:
        current = self.tree.get(todo_id).priority
        return self.set_priority(todo_id, current + delta)

    def set_note(self, todo_id: int, text: Optional[str]) -> SetNote:
        return self.store.execute(SetNote(todo_id, text))

    def set_tags(self, todo_id: int, tags: Iterable[str], contexts: Iterable[str]) -> SetTags:
        tags = {t.lstrip('#') for t in tags}
        contexts = {c.lstrip('@') for c in contexts}
        return self.store.execute(SetTags(todo_id, tags, contexts))

    def set_due(self, todo_id: int, expression: str) -> SetDueDate:
        """Set the due date from a date expression such as 'tomorrow' or 'dec 25'."""
        self.tree.get(todo_id)
        try:
            due_date = self.date_parser.parse_due(expression, self.clock())
        except DateParseError:
            logger.warning(f"Unparseable due date '{expression}' for todo {todo_id}")
            raise
        return self.store.execute(SetDueDate(todo_id, due_date))

    def clear_due(self, todo_id: int) -> SetDueDate:
        return self.store.execute(SetDueDate(todo_id, None))

    def set_recurrence(self, todo_id: int, expression: Optional[str]) -> SetRecurrence:
        """Set a recurrence such as 'weekly' or 'every 3 days'; None clears it."""
        self.tree.get(todo_id)
        pattern = None
        if expression is not None:
            pattern = RecurrenceParser.parse(expression)
            if pattern is None:
                logger.warning(f"Unparseable recurrence '{expression}' for todo {todo_id}")
                normalized = ' '.join(expression.lower().split())
                raise DateParseError(expression, self.date_parser.suggest(normalized))
        return self.store.execute(SetRecurrence(todo_id, pattern))

    def toggle_timer(self, todo_id: int) -> ToggleTimer:
        return self.store.execute(ToggleTimer(todo_id, self.clock()))

    def toggle_expanded(self, todo_id: int) -> ToggleExpanded:
        return self.store.execute(ToggleExpanded(todo_id))

    def apply_template(self, todo_id: int, template_id: str) -> ApplyTemplate:
        template = self.templates.get(template_id)
        return self.store.execute(ApplyTemplate(todo_id, template))

    def create_template(self, todo_id: int, name: str) -> str:
        """Save a todo's metadata as a user template; returns the template id."""
        return self.templates.create_from_todo(self.tree.get(todo_id), name, self.clock())

    # History

    def undo(self) -> AnyCommand:
        return self.store.undo()

    def redo(self) -> AnyCommand:
        return self.store.redo()

    # Workspaces

    def create_workspace(self, name: str, description: Optional[str] = None) -> Workspace:
        return self.store.create(name, description, created_at=self.clock())

    def delete_workspace(self, name: str) -> Workspace:
        return self.store.delete(name)

    def switch_workspace(self, name: str) -> Workspace:
        return self.store.set_active(name)

    def rename_workspace(self, name: str, new_name: str) -> Workspace:
        return self.store.rename(name, new_name)

    def search_all(self, query: str) -> List[Tuple[str, Todo]]:
        return self.store.search_all(query)

    # Persistence

    def save(self):
        if self.storage is None:
            return
        self.storage.save(self.store)
        self.templates.save()

    # Views

    def visible(self, view: View = View()) -> List[Tuple[Todo, int]]:
        """Rows to display as (todo, depth).

        ALL, PENDING and COMPLETED keep the tree shape. The other views are
        flat lists of matches at depth 0.
        """
        tree = self.tree
        if view.kind == ViewKind.ALL:
            return list(tree.flatten())
        if view.kind == ViewKind.PENDING:
            return [(todo, depth) for todo, depth in tree.flatten() if not todo.completed]
        if view.kind == ViewKind.COMPLETED:
            return [(todo, depth) for todo, depth in tree.flatten() if todo.completed]

        if view.kind == ViewKind.SEARCH:
            matches = tree.search(view.argument)
        elif view.kind == ViewKind.TAG:
            matches = tree.with_tag(view.argument)
        elif view.kind == ViewKind.CONTEXT:
            matches = tree.with_context(view.argument)
        else:
            matches = tree.by_due(view.argument, self.clock())
        return [(todo, 0) for todo in matches]

    def summary(self) -> Dict[str, int]:
        """Counts shown under the list."""
        tree = self.tree
        now = self.clock()
        return {
            'total': len(tree),
            'pending': len(tree.pending()),
            'completed': len(tree.completed()),
            'overdue': tree.overdue_count(now),
            'due_today': tree.due_today_count(now),
            'timers': len(tree.active_timers()),
        }
