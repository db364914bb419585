"""Exception hierarchy for Paperclip.

Every error raised by the core derives from PaperclipError so the CLI can
catch one type and report it. Failing operations never leave partial state.
"""

from typing import List, Optional


class PaperclipError(Exception):
    """Base exception for all Paperclip errors."""
    pass


class NotFoundError(PaperclipError):
    """Referenced object does not exist."""
    pass


class TodoNotFoundError(NotFoundError):
    """Todo with given ID doesn't exist in the active tree."""

    def __init__(self, todo_id: int):
        self.todo_id = todo_id
        super().__init__(f"Todo {todo_id} not found")


class WorkspaceNotFoundError(NotFoundError):
    """Workspace with given name doesn't exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Workspace '{name}' not found")


class TemplateNotFoundError(NotFoundError):
    """Template with given ID doesn't exist."""

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template '{template_id}' not found")


class InvalidParentError(NotFoundError):
    """Parent todo for a create or move doesn't exist."""

    def __init__(self, parent_id: int):
        self.parent_id = parent_id
        super().__init__(f"Parent todo {parent_id} not found")


class CycleDetectedError(PaperclipError):
    """Move would make a todo its own ancestor."""

    def __init__(self, todo_id: int, new_parent_id: int):
        self.todo_id = todo_id
        self.new_parent_id = new_parent_id
        super().__init__(
            f"Cannot move todo {todo_id} under {new_parent_id}: it would become its own ancestor"
        )


class InvalidFieldError(PaperclipError):
    """Field name is not a mutable todo field."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Unknown or read-only todo field: {field_name}")


class DuplicateNameError(PaperclipError):
    """Workspace name is already taken."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Workspace '{name}' already exists")


class LastWorkspaceError(PaperclipError):
    """The only remaining workspace cannot be deleted."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Cannot delete '{name}': it is the last workspace")


class DateParseError(PaperclipError):
    """Date expression was not recognized."""

    def __init__(self, text: str, suggestions: Optional[List[str]] = None):
        self.text = text
        self.suggestions = suggestions or []
        super().__init__(f"Could not understand date: '{text}'")


class NothingToUndoError(PaperclipError):
    """History has no command before the cursor."""

    def __init__(self):
        super().__init__("Nothing to undo")


class NothingToRedoError(PaperclipError):
    """History cursor is already at the most recent command."""

    def __init__(self):
        super().__init__("Nothing to redo")


class StorageError(PaperclipError):
    """Persistence failed; wraps the underlying I/O or decode error."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)
