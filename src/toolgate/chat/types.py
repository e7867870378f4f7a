"""Conversation messages, tool results and server events.

Plain immutable data. The ``to_dict`` methods produce the shapes used on the
provider wire (history) and on the client WebSocket (events).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

CREATE_FILE_TOOL = "create_file"


class Role(Enum):
    """Message role in a conversation."""

    USER = "user"
    ASSISTANT = "assistant"


# -----------------------------------------------------------------------------
# Content blocks
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TextBlock:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True, slots=True)
class ToolUseBlock:
    """A tool invocation produced by the model.

    While it waits for approval this is the session's pending tool call.
    """

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "tool_use",
            "id": self.id,
            "name": self.name,
            "input": dict(self.input),
        }


@dataclass(frozen=True, slots=True)
class ToolResultBlock:
    tool_use_id: str
    content: str  # Serialized ToolResultPayload

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }


AssistantBlock = TextBlock | ToolUseBlock
UserBlock = TextBlock | ToolResultBlock
ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock

PendingToolCall = ToolUseBlock


@dataclass(frozen=True, slots=True)
class Message:
    """One entry of the conversation history."""

    role: Role
    content: tuple[ContentBlock, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "content": [block.to_dict() for block in self.content],
        }


# -----------------------------------------------------------------------------
# Tool results
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ToolResultOk:
    file_path: str
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {"status": "ok", "file_path": self.file_path, "size": self.size}

    def serialize(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True, slots=True)
class ToolResultDenied:
    def to_dict(self) -> dict[str, Any]:
        return {"status": "denied"}

    def serialize(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True, slots=True)
class ToolResultError:
    error_code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"status": "error", "error_code": self.error_code, "message": self.message}

    def serialize(self) -> str:
        return json.dumps(self.to_dict())


ToolResultPayload = ToolResultOk | ToolResultDenied | ToolResultError


# -----------------------------------------------------------------------------
# Server events
# -----------------------------------------------------------------------------


class ServerEventType(str, Enum):
    """Outbound event vocabulary."""

    SESSION_CREATED = "session_created"
    STATUS_UPDATE = "status_update"
    AI_CHUNK = "ai_chunk"
    ASSISTANT_MESSAGE_COMPLETED = "assistant_message_completed"
    TOOL_REQUEST = "tool_request"
    TOOL_CHUNK = "tool_chunk"
    ERROR = "error"


# Status fields relayed to clients; anything else is dropped
STATUS_FIELDS: dict[str, type] = {
    "ai_typing": bool,
    "tool_running": bool,
    "file_path": str,
    "busy": bool,
}

CompletionReason = Literal["ok", "error"]


@dataclass(frozen=True, slots=True)
class ServerEvent:
    """One outbound event. Build these with the module-level constructors."""

    type: ServerEventType
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "data": dict(self.data)}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def session_created(session_id: str) -> ServerEvent:
    return ServerEvent(ServerEventType.SESSION_CREATED, {"session_id": session_id})


def status_update(**fields: Any) -> ServerEvent:
    return ServerEvent(ServerEventType.STATUS_UPDATE, fields)


def ai_chunk(text: str) -> ServerEvent:
    return ServerEvent(ServerEventType.AI_CHUNK, {"text": text})


def assistant_message_completed(reason: CompletionReason) -> ServerEvent:
    return ServerEvent(ServerEventType.ASSISTANT_MESSAGE_COMPLETED, {"reason": reason})


def tool_request(tool: ToolUseBlock) -> ServerEvent:
    return ServerEvent(ServerEventType.TOOL_REQUEST, tool.to_dict())


def tool_chunk(chunk: str) -> ServerEvent:
    return ServerEvent(ServerEventType.TOOL_CHUNK, {"chunk": chunk})


def error(message: str, detail: str | None = None) -> ServerEvent:
    data: dict[str, Any] = {"message": message}
    if detail is not None:
        data["detail"] = detail
    return ServerEvent(ServerEventType.ERROR, data)
