"""toolgate: streaming LLM chat with human-approved file creation."""

__version__ = "0.1.0"

# Public API
from toolgate.chat import (
    AnthropicProvider,
    ChatSession,
    LLMProvider,
    Message,
    Role,
    ServerEvent,
    SessionOrchestrator,
    ToolExecutor,
    TurnHandler,
    WorkspaceFileWriter,
)
from toolgate.config import Config, get_config, load_config
from toolgate.metrics import Metrics
from toolgate.server import ChatGateway, create_app

__all__ = [
    # Entry points
    "create_app",
    "ChatGateway",
    # Config
    "Config",
    "load_config",
    "get_config",
    # Chat
    "ChatSession",
    "Message",
    "Role",
    "ServerEvent",
    "SessionOrchestrator",
    # Providers and tools
    "AnthropicProvider",
    "LLMProvider",
    "TurnHandler",
    "ToolExecutor",
    "WorkspaceFileWriter",
    # Observability
    "Metrics",
]
