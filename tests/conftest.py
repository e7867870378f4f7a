"""Root pytest configuration for all tests."""

from __future__ import annotations

import pytest

from toolgate.config import clear_secret_cache, reset_config
from toolgate.metrics import Metrics

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)

_ENV_VARS = (
    "PORT",
    "WS_ALLOWED_ORIGINS",
    "ANTHROPIC_MODEL",
    "ANTHROPIC_API_KEY",
    "WORKSPACE_DIR",
    "TOOLGATE_LOG",
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch):
    """Keep the host environment out of config and secret lookups."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    clear_secret_cache()
    yield
    reset_config()
    clear_secret_cache()


@pytest.fixture
def metrics() -> Metrics:
    """A fresh metrics registry."""
    return Metrics()
