"""Chat layer: session state, streaming provider, tool executor, orchestrator."""

from toolgate.chat.anthropic import AnthropicProvider, TurnAssembler
from toolgate.chat.errors import (
    AIErrorCode,
    ClassifiedError,
    ClientProtocolError,
    ToolErrorCode,
    ToolExecutionError,
    UpstreamError,
    classify_upstream_error,
)
from toolgate.chat.executor import (
    ToolDone,
    ToolEvent,
    ToolExecutor,
    ToolProgress,
    WorkspaceFileWriter,
)
from toolgate.chat.orchestrator import DeferredResult, SessionOrchestrator, TurnKind
from toolgate.chat.provider import LLMProvider, TurnHandler
from toolgate.chat.schemas import (
    CreateFileInput,
    ToolApprovalEvent,
    UserMessageEvent,
    parse_client_event,
    validate_tool_input,
)
from toolgate.chat.session import ChatSession
from toolgate.chat.sse import SSEDecoder, iter_sse_events
from toolgate.chat.types import (
    Message,
    Role,
    ServerEvent,
    ServerEventType,
    TextBlock,
    ToolResultBlock,
    ToolResultDenied,
    ToolResultError,
    ToolResultOk,
    ToolUseBlock,
)

__all__ = [
    "AIErrorCode",
    "AnthropicProvider",
    "ChatSession",
    "ClassifiedError",
    "ClientProtocolError",
    "CreateFileInput",
    "DeferredResult",
    "LLMProvider",
    "Message",
    "Role",
    "SSEDecoder",
    "ServerEvent",
    "ServerEventType",
    "SessionOrchestrator",
    "TextBlock",
    "ToolApprovalEvent",
    "ToolDone",
    "ToolErrorCode",
    "ToolEvent",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolProgress",
    "ToolResultBlock",
    "ToolResultDenied",
    "ToolResultError",
    "ToolResultOk",
    "ToolUseBlock",
    "TurnAssembler",
    "TurnHandler",
    "TurnKind",
    "UpstreamError",
    "UserMessageEvent",
    "WorkspaceFileWriter",
    "classify_upstream_error",
    "iter_sse_events",
    "parse_client_event",
    "validate_tool_input",
]
