"""Per-connection conversation state."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from toolgate.chat.types import (
    AssistantBlock,
    Message,
    PendingToolCall,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolResultPayload,
)


class ChatSession:
    """History, pending tool call and busy flag for one conversation.

    Mutated only by the SessionOrchestrator, which owns every invariant;
    nothing here validates. ``history`` is the list handed to the provider
    on each turn, so appends are visible to the next turn without copying.
    """

    def __init__(self, session_id: str | None = None) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.history: list[Message] = []
        self.pending_tool: PendingToolCall | None = None
        self.active = False

    def add_user_message(self, text: str) -> None:
        self.history.append(Message(Role.USER, (TextBlock(text),)))

    def add_assistant_blocks(self, blocks: Iterable[AssistantBlock]) -> None:
        self.history.append(Message(Role.ASSISTANT, tuple(blocks)))

    def record_tool_result(self, tool_use_id: str, result: ToolResultPayload) -> None:
        block = ToolResultBlock(tool_use_id=tool_use_id, content=result.serialize())
        self.history.append(Message(Role.USER, (block,)))

    def set_pending_tool(self, tool: PendingToolCall) -> None:
        self.pending_tool = tool

    def clear_pending_tool(self) -> None:
        self.pending_tool = None

    def to_public_state(self) -> dict[str, Any]:
        """JSON-ready snapshot for debugging and presentation layers."""
        return {
            "session_id": self.session_id,
            "history": [m.to_dict() for m in self.history],
            "pending_tool": self.pending_tool.to_dict() if self.pending_tool else None,
            "active": self.active,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

    def __repr__(self) -> str:
        return (
            f"<ChatSession {self.session_id} messages={len(self.history)} "
            f"active={self.active} pending={self.pending_tool.id if self.pending_tool else None}>"
        )
