"""Named workspaces, each with its own todo tree and undo history."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .commands import DEFAULT_HISTORY_LIMIT, AnyCommand, CommandHistory
from .exceptions import (
    DuplicateNameError,
    LastWorkspaceError,
    WorkspaceNotFoundError,
)
from .todo import Todo
from .tree import TodoTree
from .utils.datetime import from_iso_string, now_utc, to_iso_string


logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    """A named todo tree. The history lives only in memory."""
    name: str
    description: Optional[str] = None
    created_at: datetime = field(default_factory=now_utc)
    tree: TodoTree = field(default_factory=TodoTree)
    history: CommandHistory = field(default_factory=CommandHistory, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'description': self.description,
            'created_at': to_iso_string(self.created_at),
            'tree': self.tree.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], history_limit: int = DEFAULT_HISTORY_LIMIT) -> 'Workspace':
        return cls(
            name=data['name'],
            description=data.get('description'),
            created_at=from_iso_string(data.get('created_at')) or now_utc(),
            tree=TodoTree.from_dict(data.get('tree', {})),
            history=CommandHistory(history_limit),
        )


class WorkspaceStore:
    """All workspaces plus which one is active.

    Commands, undo and redo always target the active workspace.
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self.history_limit = history_limit
        self.workspaces: Dict[str, Workspace] = {}
        self.active_name: Optional[str] = None

    def __contains__(self, name: object) -> bool:
        return name in self.workspaces

    def __len__(self) -> int:
        return len(self.workspaces)

    def get(self, name: str) -> Workspace:
        try:
            return self.workspaces[name]
        except KeyError:
            raise WorkspaceNotFoundError(name) from None

    def names(self) -> List[str]:
        """Workspace names, oldest first."""
        return [ws.name for ws in self._by_age()]

    def _by_age(self) -> List[Workspace]:
        return sorted(self.workspaces.values(), key=lambda ws: ws.created_at)

    def create(self, name: str, description: Optional[str] = None,
               created_at: Optional[datetime] = None) -> Workspace:
        """Create a workspace. The first one created becomes active.

        Raises:
            DuplicateNameError: If the name is taken
        """
        name = name.strip()
        if not name:
            raise ValueError("Workspace name cannot be empty")
        if name in self.workspaces:
            raise DuplicateNameError(name)

        workspace = Workspace(
            name=name,
            description=description,
            created_at=created_at or now_utc(),
            history=CommandHistory(self.history_limit),
        )
        self.workspaces[name] = workspace
        if self.active_name is None:
            self.active_name = name
        logger.info(f"Created workspace '{name}'")
        return workspace

    def delete(self, name: str) -> Workspace:
        """Delete a workspace and its tree.

        Deleting the active workspace activates the oldest remaining one.

        Raises:
            WorkspaceNotFoundError: If the name is unknown
            LastWorkspaceError: If it is the only workspace
        """
        workspace = self.get(name)
        if len(self.workspaces) == 1:
            raise LastWorkspaceError(name)

        del self.workspaces[name]
        if self.active_name == name:
            self.active_name = self._by_age()[0].name
            logger.info(f"Active workspace is now '{self.active_name}'")
        logger.info(f"Deleted workspace '{name}'")
        return workspace

    def rename(self, name: str, new_name: str) -> Workspace:
        workspace = self.get(name)
        new_name = new_name.strip()
        if not new_name:
            raise ValueError("Workspace name cannot be empty")
        if new_name == name:
            return workspace
        if new_name in self.workspaces:
            raise DuplicateNameError(new_name)

        del self.workspaces[name]
        workspace.name = new_name
        self.workspaces[new_name] = workspace
        if self.active_name == name:
            self.active_name = new_name
        return workspace

    def active(self) -> Workspace:
        if self.active_name is None:
            raise WorkspaceNotFoundError("<none>")
        return self.get(self.active_name)

    def set_active(self, name: str) -> Workspace:
        workspace = self.get(name)
        self.active_name = name
        return workspace

    def ensure_default(self, name: str, created_at: Optional[datetime] = None) -> Workspace:
        """Make sure at least one workspace exists, creating ``name`` if needed."""
        if not self.workspaces:
            return self.create(name, created_at=created_at)
        if self.active_name not in self.workspaces:
            self.active_name = self._by_age()[0].name
        return self.active()

    # Commands against the active workspace

    def execute(self, command: AnyCommand) -> AnyCommand:
        workspace = self.active()
        return workspace.history.execute(command, workspace.tree)

    def undo(self) -> AnyCommand:
        workspace = self.active()
        return workspace.history.undo(workspace.tree)

    def redo(self) -> AnyCommand:
        workspace = self.active()
        return workspace.history.redo(workspace.tree)

    def search_all(self, query: str) -> List[Tuple[str, Todo]]:
        """Search every workspace; returns (workspace name, todo) pairs."""
        results = []
        for workspace in self._by_age():
            results.extend((workspace.name, todo) for todo in workspace.tree.search(query))
        return results

    def to_dict(self) -> Dict[str, Any]:
        return {
            'active': self.active_name,
            'workspaces': [ws.to_dict() for ws in self._by_age()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], history_limit: int = DEFAULT_HISTORY_LIMIT) -> 'WorkspaceStore':
        store = cls(history_limit)
        for item in data.get('workspaces', []):
            workspace = Workspace.from_dict(item, history_limit)
            store.workspaces[workspace.name] = workspace
        active = data.get('active')
        if active in store.workspaces:
            store.active_name = active
        elif store.workspaces:
            store.active_name = store._by_age()[0].name
        return store
