"""Validation models for everything that crosses a process boundary.

- Client events arriving over the WebSocket
- create_file tool input produced by the model
- Streaming events emitted by the Anthropic Messages API
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, StrictBool, StrictStr, TypeAdapter, ValidationError

from toolgate.chat.errors import ClientProtocolError

# =============================================================================
# Client events
# =============================================================================


class UserMessageData(BaseModel):
    text: StrictStr = Field(min_length=1)


class UserMessageEvent(BaseModel):
    """The human sent a chat message."""

    type: Literal["user_message"]
    data: UserMessageData


class ToolApprovalData(BaseModel):
    tool_use_id: StrictStr = Field(min_length=1)
    approved: StrictBool


class ToolApprovalEvent(BaseModel):
    """The human approved or denied the pending tool call."""

    type: Literal["tool_approval"]
    data: ToolApprovalData


ClientEvent = Annotated[
    UserMessageEvent | ToolApprovalEvent,
    Field(discriminator="type"),
]

_client_event_adapter: TypeAdapter[UserMessageEvent | ToolApprovalEvent] = TypeAdapter(
    ClientEvent
)


def parse_client_event(raw: str | bytes) -> UserMessageEvent | ToolApprovalEvent:
    """Decode and validate one inbound frame.

    Raises:
        ClientProtocolError: ``invalid_json`` if the frame is not JSON,
            ``invalid_payload`` if it is JSON but not a known event.
    """
    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise ClientProtocolError("invalid_json") from e

    try:
        return _client_event_adapter.validate_python(payload)
    except ValidationError as e:
        raise ClientProtocolError("invalid_payload") from e


# =============================================================================
# Tool input
# =============================================================================


class CreateFileInput(BaseModel):
    """Arguments of the create_file tool."""

    path: StrictStr = Field(min_length=1)
    content: StrictStr

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "content": self.content}


def validate_tool_input(value: Any) -> CreateFileInput | None:
    """Return the validated input, or None if it does not match the schema."""
    try:
        return CreateFileInput.model_validate(value)
    except ValidationError:
        return None


CREATE_FILE_TOOL_SCHEMA: dict[str, Any] = {
    "name": "create_file",
    "description": "Create a file in the workspace and fill it in chunks",
    "input_schema": {
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "content": {"type": "string"},
        },
        "required": ["path", "content"],
    },
}


# =============================================================================
# Provider stream events
# =============================================================================


class ContentBlockInfo(BaseModel):
    type: Literal["text", "tool_use"]
    id: str | None = None
    name: str | None = None


class ContentBlockStart(BaseModel):
    type: Literal["content_block_start"]
    index: int
    content_block: ContentBlockInfo


class TextDelta(BaseModel):
    type: Literal["text_delta"]
    text: str = ""


class InputJsonDelta(BaseModel):
    type: Literal["input_json_delta"]
    partial_json: str = ""


class ContentBlockDelta(BaseModel):
    type: Literal["content_block_delta"]
    index: int | None = None
    delta: Annotated[TextDelta | InputJsonDelta, Field(discriminator="type")] | None = None


class ContentBlockStop(BaseModel):
    type: Literal["content_block_stop"]
    index: int | None = None


class MessageStop(BaseModel):
    type: Literal["message_stop"]


class StreamError(BaseModel):
    """In-band error reported after the response has started streaming."""

    type: Literal["error"]
    error: dict[str, Any] = Field(default_factory=dict)


ProviderEvent = Annotated[
    ContentBlockStart | ContentBlockDelta | ContentBlockStop | MessageStop | StreamError,
    Field(discriminator="type"),
]

_provider_event_adapter: TypeAdapter[
    ContentBlockStart | ContentBlockDelta | ContentBlockStop | MessageStop | StreamError
] = TypeAdapter(ProviderEvent)

HANDLED_EVENT_TYPES = frozenset(
    {"content_block_start", "content_block_delta", "content_block_stop", "message_stop", "error"}
)


def parse_provider_event(
    raw: dict[str, Any],
) -> ContentBlockStart | ContentBlockDelta | ContentBlockStop | MessageStop | StreamError | None:
    """Validate one decoded stream event.

    Returns None for event types the decoder does not act on (message_start,
    message_delta, ping). Raises pydantic.ValidationError for malformed events
    of a handled type.
    """
    if raw.get("type") not in HANDLED_EVENT_TYPES:
        return None
    return _provider_event_adapter.validate_python(raw)
