"""Pytest configuration and shared fixtures."""

import sys
from datetime import datetime
from pathlib import Path

import pytest

# Ensure src directory is in Python path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from paperclip.config import Config, ConfigModel  # noqa: E402
from paperclip.utils.datetime import fixed_clock  # noqa: E402


# Monday 2024-06-10 10:00 in the local timezone
REFERENCE_NOW = datetime(2024, 6, 10, 10, 0, 0).astimezone()


@pytest.fixture
def now():
    return REFERENCE_NOW


@pytest.fixture
def clock():
    return fixed_clock(REFERENCE_NOW)


@pytest.fixture
def config(tmp_path):
    return ConfigModel(data_dir=str(tmp_path))


@pytest.fixture(autouse=True)
def reset_config_singleton(monkeypatch):
    """Keep the cached configuration and PAPERCLIP_DATA_DIR from leaking between tests."""
    monkeypatch.delenv("PAPERCLIP_DATA_DIR", raising=False)
    Config.reset()
    yield
    Config.reset()
