"""Configuration management for toolgate.

Hierarchical YAML configuration with:
- System-level config (/etc/toolgate/ or %PROGRAMDATA%)
- User-level config (~/.config/toolgate/ or %APPDATA%)
- Project-level config ($project_root/.toolgate/)
- Environment variable overrides (highest priority)

Example usage:
    from toolgate.config import load_config

    config = load_config(project_root="/path/to/project")
    print(config.llm.model)
    print(config.workspace.root)
"""

from toolgate.config.loader import (
    deep_merge,
    get_config,
    load_config,
    reset_config,
)
from toolgate.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from toolgate.config.schema import (
    Config,
    LLMConfig,
    LoggingConfig,
    ServerConfig,
    WorkspaceConfig,
)
from toolgate.config.secrets import clear_secret_cache, fetch_secret

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    "deep_merge",
    "LLMConfig",
    "LoggingConfig",
    "ServerConfig",
    "WorkspaceConfig",
    "fetch_secret",
    "clear_secret_cache",
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
