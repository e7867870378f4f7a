"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Deep merging of system, user and project files
- Environment variable overrides
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from toolgate.config.paths import get_config_paths
from toolgate.config.schema import (
    Config,
    LLMConfig,
    LoggingConfig,
    ServerConfig,
    WorkspaceConfig,
)

_log = logging.getLogger("toolgate.config")

_cached_config: Config | None = None

_KNOWN_SECTIONS = {"llm", "server", "workspace", "logging"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` onto ``base`` without mutating either.

    Nested dicts recurse, lists and scalars are replaced, and a None in
    ``override`` leaves the base value alone.
    """
    result = base.copy()
    for key, value in override.items():
        if value is None:
            continue
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def env_overrides() -> dict[str, Any]:
    """Build a config dict from environment variables.

    API keys are NOT read here; use fetch_secret() for those.
    """
    overrides: dict[str, Any] = {}

    port = os.environ.get("PORT")
    if port:
        try:
            overrides.setdefault("server", {})["port"] = int(port)
        except ValueError:
            _log.warning("Ignoring non-integer PORT=%r", port)

    origins = os.environ.get("WS_ALLOWED_ORIGINS")
    if origins:
        overrides.setdefault("server", {})["allowed_origins"] = [
            o.strip() for o in origins.split(",") if o.strip()
        ]

    model = os.environ.get("ANTHROPIC_MODEL")
    if model:
        overrides.setdefault("llm", {})["model"] = model

    workspace = os.environ.get("WORKSPACE_DIR")
    if workspace:
        overrides.setdefault("workspace", {})["root"] = workspace

    log_path = os.environ.get("TOOLGATE_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    return overrides


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    llm_defaults = LLMConfig()
    llm_data = _section(data, "llm")
    llm = LLMConfig(
        model=llm_data.get("model", llm_defaults.model),
        api_url=llm_data.get("api_url", llm_defaults.api_url),
        api_version=llm_data.get("api_version", llm_defaults.api_version),
        max_tokens=int(llm_data.get("max_tokens", llm_defaults.max_tokens)),
        timeout=llm_data.get("timeout", llm_defaults.timeout),
    )

    server_defaults = ServerConfig()
    server_data = _section(data, "server")
    origins = server_data.get("allowed_origins", server_defaults.allowed_origins)
    if isinstance(origins, str):
        origins = [o.strip() for o in origins.split(",") if o.strip()]
    server = ServerConfig(
        host=server_data.get("host", server_defaults.host),
        port=int(server_data.get("port", server_defaults.port)),
        allowed_origins=[str(o) for o in origins],
    )

    workspace_defaults = WorkspaceConfig()
    workspace_data = _section(data, "workspace")
    workspace = WorkspaceConfig(
        root=str(workspace_data.get("root", workspace_defaults.root)),
        chunk_size=int(workspace_data.get("chunk_size", workspace_defaults.chunk_size)),
        chunk_delay=float(workspace_data.get("chunk_delay", workspace_defaults.chunk_delay)),
    )

    log_data = _section(data, "logging")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    extra = {k: v for k, v in data.items() if k not in _KNOWN_SECTIONS}

    return Config(
        llm=llm,
        server=server,
        workspace=workspace,
        logging=logging_config,
        extra=extra,
    )


def load_config(project_root: str | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config ($project_root/.toolgate/config.yaml)
    3. User config
    4. System config

    Args:
        project_root: Project directory for project-level config.
        reload: Force reload even if cached.
    """
    global _cached_config

    if _cached_config is not None and not reload and project_root is None:
        return _cached_config

    merged: dict[str, Any] = {}
    for path in get_config_paths(project_root):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            merged = deep_merge(merged, config_data)

    merged = deep_merge(merged, env_overrides())
    config = dict_to_config(merged)

    # Only the global (no project) config is cached
    if project_root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Drop the cached config. Used by tests."""
    global _cached_config
    _cached_config = None
