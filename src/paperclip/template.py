"""Reusable todo templates.

A template carries the metadata a todo can inherit: tags, contexts, priority,
recurrence and notes. Builtin templates are always available; user templates
are stored as YAML in the data directory.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml

from .exceptions import StorageError, TemplateNotFoundError
from .recurring import RecurrencePattern
from .todo import Todo, clamp_priority
from .utils.datetime import from_iso_string, now_utc, to_iso_string


logger = logging.getLogger(__name__)

BUILTIN_PREFIX = "builtin-"


@dataclass
class TodoTemplate:
    """Named set of todo metadata."""
    id: str
    name: str
    description: str = ""
    tags: Set[str] = field(default_factory=set)
    contexts: Set[str] = field(default_factory=set)
    priority: int = 0
    recurrence: Optional[RecurrencePattern] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        self.tags = set(self.tags)
        self.contexts = set(self.contexts)
        self.priority = clamp_priority(self.priority)

    @property
    def builtin(self) -> bool:
        return self.id.startswith(BUILTIN_PREFIX)

    @classmethod
    def from_todo(cls, todo: Todo, name: str, template_id: str, now: datetime) -> 'TodoTemplate':
        return cls(
            id=template_id,
            name=name,
            description=todo.description,
            tags=set(todo.tags),
            contexts=set(todo.contexts),
            priority=todo.priority,
            recurrence=copy.deepcopy(todo.recurrence),
            notes=todo.notes,
            created_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'tags': sorted(self.tags),
            'contexts': sorted(self.contexts),
            'priority': self.priority,
            'recurrence': self.recurrence.to_dict() if self.recurrence else None,
            'notes': self.notes,
            'created_at': to_iso_string(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TodoTemplate':
        recurrence = data.get('recurrence')
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            description=data.get('description', ""),
            tags=set(data.get('tags') or []),
            contexts=set(data.get('contexts') or []),
            priority=data.get('priority', 0),
            recurrence=RecurrencePattern.from_dict(recurrence) if recurrence else None,
            notes=data.get('notes'),
            created_at=from_iso_string(data.get('created_at')) or now_utc(),
        )


def builtin_templates() -> List[TodoTemplate]:
    """The templates every installation starts with."""
    return [
        TodoTemplate(
            id="builtin-work-task",
            name="Work Task",
            tags={"task"},
            contexts={"work"},
            priority=2,
        ),
        TodoTemplate(
            id="builtin-personal-task",
            name="Personal Task",
            tags={"life"},
            contexts={"personal"},
            priority=1,
        ),
        TodoTemplate(
            id="builtin-bug-report",
            name="Bug Report",
            tags={"bug"},
            contexts={"development"},
            priority=4,
            notes=(
                "Steps to reproduce:\n1. \n2. \n3. \n\n"
                "Expected behavior:\n\nActual behavior:\n\nPossible fix:"
            ),
        ),
        TodoTemplate(
            id="builtin-meeting-notes",
            name="Meeting Notes",
            tags={"meeting"},
            contexts={"meetings"},
            priority=1,
            notes="Agenda:\n- \n- \n- \n\nNotes:\n- \n- \n- \n\nAction items:\n- \n- ",
        ),
    ]


class TemplateManager:
    """Keeps builtin and user templates, keyed by id."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self.templates: Dict[str, TodoTemplate] = {t.id: t for t in builtin_templates()}

    def add(self, template: TodoTemplate):
        self.templates[template.id] = template

    def remove(self, template_id: str) -> TodoTemplate:
        try:
            return self.templates.pop(template_id)
        except KeyError:
            raise TemplateNotFoundError(template_id) from None

    def get(self, template_id: str) -> TodoTemplate:
        """Look a template up by id, falling back to a case-insensitive name match."""
        if template_id in self.templates:
            return self.templates[template_id]
        for template in self.templates.values():
            if template.name.lower() == template_id.lower():
                return template
        raise TemplateNotFoundError(template_id)

    def all(self) -> List[TodoTemplate]:
        return sorted(self.templates.values(), key=lambda t: t.name)

    def create_from_todo(self, todo: Todo, name: str, now: datetime) -> str:
        """Save a todo's metadata as a new user template and return its id."""
        template_id = f"template_{int(now.timestamp() * 1000)}"
        suffix = 1
        while template_id in self.templates:
            suffix += 1
            template_id = f"template_{int(now.timestamp() * 1000)}_{suffix}"
        self.add(TodoTemplate.from_todo(todo, name, template_id, now))
        return template_id

    def load(self):
        """Load user templates from the YAML file, if there is one."""
        if self.path is None or not self.path.exists():
            return

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
            loaded = [TodoTemplate.from_dict(item) for item in data.get('templates', [])]
        except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to load templates from {self.path}: {e}", str(self.path)) from e

        for template in loaded:
            self.add(template)
        logger.info(f"Loaded {len(loaded)} user templates from {self.path}")

    def save(self):
        """Write user templates (not builtins) to the YAML file."""
        if self.path is None:
            return

        user_templates = [t.to_dict() for t in self.all() if not t.builtin]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                yaml.safe_dump({'templates': user_templates}, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise StorageError(f"Failed to save templates to {self.path}: {e}", str(self.path)) from e
        logger.info(f"Saved {len(user_templates)} user templates to {self.path}")
