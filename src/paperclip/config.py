"""Configuration management for Paperclip."""

import logging
import os
from dataclasses import asdict, dataclass, fields
from datetime import time
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .exceptions import StorageError
from .utils.datetime import parse_time_of_day


logger = logging.getLogger(__name__)

DATA_DIR_ENV = "PAPERCLIP_DATA_DIR"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ConfigModel:
    """Global configuration model for Paperclip."""

    # File paths
    data_dir: str = "~/.paperclip"

    # Workspaces and history
    default_workspace: str = "Personal"
    history_limit: int = 50  # Undoable commands kept per workspace

    # Date preferences
    end_of_day: str = "23:59:59"  # Time given to date-only due dates
    first_day_of_week: int = 0  # 0=Monday, 6=Sunday

    # Behavior settings
    expand_new_todos: bool = True
    strict_due_dates: bool = False  # Reject input whose due: token fails to parse
    spawn_recurring: bool = True  # Completing a recurring todo creates the next one

    # Diagnostics
    log_level: str = "WARNING"

    def __post_init__(self):
        """Post-initialization setup."""
        # Expand user paths
        self.data_dir = os.path.expanduser(str(self.data_dir))

        if self.history_limit < 1:
            raise ValueError(f"history_limit must be at least 1, got {self.history_limit}")
        if not 0 <= self.first_day_of_week <= 6:
            raise ValueError(f"first_day_of_week must be 0-6, got {self.first_day_of_week}")
        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        parse_time_of_day(self.end_of_day)

    @property
    def end_of_day_time(self) -> time:
        return parse_time_of_day(self.end_of_day)

    def to_yaml(self) -> str:
        """Serialize config to YAML."""
        return yaml.dump(asdict(self), default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "ConfigModel":
        """Deserialize config from YAML, ignoring keys this version doesn't know."""
        data = yaml.safe_load(yaml_str) or {}
        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")

        return cls(**{k: v for k, v in data.items() if k in known})

    def get_config_path(self) -> Path:
        """Get the config file path."""
        return Path(self.data_dir) / "config.yaml"

    def get_workspaces_path(self) -> Path:
        return Path(self.data_dir) / "workspaces.json"

    def get_templates_path(self) -> Path:
        return Path(self.data_dir) / "templates.yaml"


def default_data_dir() -> str:
    return os.environ.get(DATA_DIR_ENV) or ConfigModel.data_dir


class Config:
    """Configuration manager for Paperclip."""

    _instance: Optional[ConfigModel] = None

    @classmethod
    def load(cls, config_path: Optional[Path] = None,
             overrides: Optional[Dict[str, Any]] = None) -> ConfigModel:
        """Load configuration from file or create default.

        The data directory comes from ``overrides['data_dir']``, then the
        PAPERCLIP_DATA_DIR environment variable, then the default. The config
        file lives inside it unless config_path is given.
        """
        if cls._instance is not None and config_path is None and not overrides:
            return cls._instance

        overrides = dict(overrides or {})
        data_dir = overrides.pop('data_dir', None) or default_data_dir()
        config = ConfigModel(data_dir=data_dir)

        if config_path is None:
            config_path = config.get_config_path()

        if config_path.exists():
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    yaml_content = f.read()
                config = ConfigModel.from_yaml(yaml_content)
                logger.info(f"Loaded configuration from {config_path}")
            except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
                logger.warning(f"Failed to load config from {config_path}: {e}")
                logger.warning("Using default configuration.")
                config = ConfigModel(data_dir=data_dir)
            # The directory the file was found in wins over what the file says
            config.data_dir = os.path.expanduser(str(data_dir))
        else:
            cls.save(config, config_path)
            logger.info(f"Created default configuration at {config_path}")

        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)

        cls._instance = config
        return config

    @classmethod
    def save(cls, config: ConfigModel, config_path: Optional[Path] = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = config.get_config_path()

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, 'w', encoding='utf-8') as f:
                f.write(config.to_yaml())
        except OSError as e:
            raise StorageError(f"Failed to save config to {config_path}: {e}", str(config_path)) from e
        logger.info(f"Configuration saved to {config_path}")

    @classmethod
    def get(cls) -> ConfigModel:
        """Get the current configuration instance."""
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reload(cls) -> ConfigModel:
        """Reload configuration from file."""
        cls._instance = None
        return cls.load()

    @classmethod
    def reset(cls) -> None:
        """Forget the loaded configuration (useful for testing)."""
        cls._instance = None


def get_config() -> ConfigModel:
    """Get the current configuration."""
    return Config.get()


def load_config(config_path: Optional[Path] = None) -> ConfigModel:
    """Load configuration from file."""
    return Config.load(config_path)


def save_config(config: ConfigModel, config_path: Optional[Path] = None) -> None:
    """Save configuration to file."""
    Config.save(config, config_path)
