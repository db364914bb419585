"""Storage layer for Paperclip using a single JSON snapshot file."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .config import ConfigModel
from .exceptions import StorageError
from .workspace import WorkspaceStore


logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class Storage:
    """File-based storage for all workspaces.

    The whole store is written as one JSON document. Saves go to a temporary
    file in the same directory which then replaces the snapshot, so a crash
    mid-write never leaves a truncated file behind.
    """

    def __init__(self, config: ConfigModel, path: Optional[Path] = None):
        self.config = config
        self.path = Path(path) if path else config.get_workspaces_path()

    def _ensure_directories(self):
        """Ensure necessary directories exist."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> WorkspaceStore:
        """Load every workspace. A missing file gives a store with the default workspace."""
        if not self.path.exists():
            store = WorkspaceStore(self.config.history_limit)
            store.ensure_default(self.config.default_workspace)
            logger.info(f"No data at {self.path}, starting with workspace '{self.config.default_workspace}'")
            return store

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            store = WorkspaceStore.from_dict(data, self.config.history_limit)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Error loading {self.path}: {e}", str(self.path)) from e
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Corrupt data in {self.path}: {e}", str(self.path)) from e

        store.ensure_default(self.config.default_workspace)
        todo_count = sum(len(ws.tree) for ws in store.workspaces.values())
        logger.info(f"Loaded {len(store)} workspaces ({todo_count} todos) from {self.path}")
        return store

    def save(self, store: WorkspaceStore):
        """Write the store atomically."""
        data = store.to_dict()
        data['version'] = FORMAT_VERSION

        temp_path = None
        try:
            self._ensure_directories()
            fd, temp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
            temp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Error saving {self.path}: {e}", str(self.path)) from e
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)

        logger.info(f"Saved {len(store)} workspaces to {self.path}")
