"""Paperclip - hierarchical todos with undo, workspaces and natural-language dates."""

__version__ = "0.1.0"
__author__ = "Paperclip Team"

from .todo import Todo, TodoStatus
from .tree import TodoTree
from .workspace import WorkspaceStore
from .session import TodoSession

__all__ = ["Todo", "TodoStatus", "TodoTree", "WorkspaceStore", "TodoSession", "__version__"]
