"""Configuration schema dataclasses for toolgate.

Defines the structure of configuration at all levels (system, user, project).
All fields carry defaults so partial configs merge cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_MODEL = "claude-3-7-sonnet-20250219"
DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_API_VERSION = "2023-06-01"


@dataclass
class LLMConfig:
    """Streaming provider configuration."""

    model: str = DEFAULT_MODEL
    api_url: str = DEFAULT_API_URL
    api_version: str = DEFAULT_API_VERSION
    max_tokens: int = 4096
    timeout: float | None = 120.0  # Seconds; None disables the read timeout


@dataclass
class ServerConfig:
    """HTTP/WebSocket server configuration.

    Example config.yaml:
        server:
          port: 4000
          allowed_origins:
            - "http://localhost:3000"
    """

    host: str = "127.0.0.1"
    port: int = 4000
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])


@dataclass
class WorkspaceConfig:
    """Where approved files are written and how the writes are paced."""

    root: str = "workspace"
    chunk_size: int = 120  # Bytes per progress slice
    chunk_delay: float = 0.08  # Seconds between slices


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object."""

    llm: LLMConfig = field(default_factory=LLMConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level sections are kept here untouched
    extra: dict[str, Any] = field(default_factory=dict)
