"""LLM provider and turn handler protocols.

A provider runs one model turn: it sends the whole history, decodes the
streamed reply and reports progress through a TurnHandler. Exactly one of
``on_end`` or ``on_error`` is called per turn, and ``stream_turn`` itself
never raises.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from toolgate.chat.types import AssistantBlock, Message, ToolUseBlock


@runtime_checkable
class TurnHandler(Protocol):
    """Callbacks a provider invokes while decoding a turn."""

    async def on_text(self, text: str) -> None:
        """A text delta arrived."""
        ...

    async def on_tool(self, tool: ToolUseBlock) -> None:
        """A tool_use block finished; input may be a placeholder if unparseable."""
        ...

    async def on_status(self, status: dict[str, Any]) -> None:
        """Typing indicator changes (``{"ai_typing": bool}``)."""
        ...

    async def on_end(self, blocks: list[AssistantBlock]) -> None:
        """The turn completed; blocks are in the order they started."""
        ...

    async def on_error(self, error: BaseException) -> None:
        """The turn failed at any point before completion."""
        ...


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for streaming chat providers."""

    @property
    def model(self) -> str:
        """The model identifier being used."""
        ...

    async def stream_turn(self, messages: Sequence[Message], handler: TurnHandler) -> None:
        """Run one turn over the full history.

        Args:
            messages: Conversation history, replayed in full
            handler: Receives text, tool, status, end and error callbacks
        """
        ...
