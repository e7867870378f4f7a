"""Shared test utilities: scripted providers, stub executors, SSE builders."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from toolgate.chat.errors import ToolExecutionError
from toolgate.chat.executor import ToolDone, ToolEvent, ToolProgress
from toolgate.chat.provider import TurnHandler
from toolgate.chat.types import (
    AssistantBlock,
    Message,
    ServerEvent,
    TextBlock,
    ToolUseBlock,
)

TurnScript = Callable[[Sequence[Message], TurnHandler], Awaitable[None]]


# =============================================================================
# Outbound events
# =============================================================================


class EventRecorder:
    """Async send_event sink that keeps every ServerEvent it receives."""

    def __init__(self) -> None:
        self.events: list[ServerEvent] = []

    async def __call__(self, event: ServerEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type.value for event in self.events]

    def data_of(self, event_type: str) -> list[dict[str, Any]]:
        return [event.data for event in self.events if event.type.value == event_type]

    def clear(self) -> None:
        self.events.clear()


# =============================================================================
# Providers
# =============================================================================


def reply(*blocks: AssistantBlock) -> TurnScript:
    """A turn that streams ``blocks`` the way the Anthropic decoder would and completes."""

    async def run(messages: Sequence[Message], handler: TurnHandler) -> None:
        await handler.on_status({"ai_typing": True})
        for block in blocks:
            if isinstance(block, TextBlock):
                await handler.on_text(block.text)
            else:
                await handler.on_tool(block)
        await handler.on_status({"ai_typing": False})
        await handler.on_end(list(blocks))

    return run


def fail(error: BaseException) -> TurnScript:
    """A turn that reports ``error`` through on_error."""

    async def run(messages: Sequence[Message], handler: TurnHandler) -> None:
        await handler.on_status({"ai_typing": True})
        await handler.on_status({"ai_typing": False})
        await handler.on_error(error)

    return run


class ScriptedProvider:
    """LLMProvider that plays one script per turn and records what it saw.

    Attributes:
        histories: Snapshot of the history passed to each turn
    """

    def __init__(self, *scripts: TurnScript, model: str = "scripted-model") -> None:
        self._scripts = list(scripts)
        self._model = model
        self.histories: list[list[Message]] = []

    @property
    def model(self) -> str:
        return self._model

    @property
    def calls(self) -> int:
        return len(self.histories)

    def add(self, *scripts: TurnScript) -> None:
        self._scripts.extend(scripts)

    async def stream_turn(self, messages: Sequence[Message], handler: TurnHandler) -> None:
        self.histories.append(list(messages))
        if not self._scripts:
            raise AssertionError("ScriptedProvider ran out of turns")
        script = self._scripts.pop(0)
        await script(messages, handler)


# =============================================================================
# Executors
# =============================================================================


class StubExecutor:
    """ToolExecutor that yields canned chunks, then done or an error."""

    def __init__(
        self,
        chunks: Sequence[str] = ("hello ", "world"),
        *,
        error: BaseException | None = None,
        file_path: str | None = None,
    ) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.file_path = file_path
        self.calls: list[tuple[str, str]] = []

    async def create_file(self, path: str, content: str):
        self.calls.append((path, content))
        written = 0
        for chunk in self.chunks:
            written += len(chunk.encode("utf-8"))
            yield ToolProgress(chunk=chunk, bytes_written=written)
        if self.error is not None:
            raise self.error
        yield ToolDone(file_path=self.file_path or f"workspace/{path}", size=written)


def write_failed(message: str = "disk full") -> ToolExecutionError:
    return ToolExecutionError("write_failed", message)


def make_tool(
    tool_id: str = "toolu_01",
    path: str = "out.txt",
    content: str = "hello world",
    **extra: Any,
) -> ToolUseBlock:
    """A create_file tool_use block; ``extra`` replaces or adds input keys."""
    tool_input: dict[str, Any] = {"path": path, "content": content}
    tool_input.update(extra)
    return ToolUseBlock(id=tool_id, name="create_file", input=tool_input)


async def collect(events) -> list[ToolEvent]:
    """Drain an async iterator of executor events."""
    return [event async for event in events]


# =============================================================================
# Anthropic wire format
# =============================================================================


def sse(payload: dict[str, Any], event: str | None = None) -> bytes:
    """Encode one SSE record, naming it after the payload type by default."""
    name = event if event is not None else payload.get("type")
    lines = []
    if name:
        lines.append(f"event: {name}")
    lines.append(f"data: {json.dumps(payload)}")
    return ("\n".join(lines) + "\n\n").encode("utf-8")


def sse_body(*payloads: dict[str, Any]) -> bytes:
    return b"".join(sse(payload) for payload in payloads)


def message_start() -> dict[str, Any]:
    return {
        "type": "message_start",
        "message": {"id": "msg_01", "type": "message", "role": "assistant", "content": []},
    }


def text_events(index: int, *parts: str) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = [
        {"type": "content_block_start", "index": index, "content_block": {"type": "text", "text": ""}}
    ]
    for part in parts:
        events.append(
            {"type": "content_block_delta", "index": index, "delta": {"type": "text_delta", "text": part}}
        )
    events.append({"type": "content_block_stop", "index": index})
    return events


def tool_events(index: int, tool_id: str, *json_parts: str, name: str = "create_file") -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = [
        {
            "type": "content_block_start",
            "index": index,
            "content_block": {"type": "tool_use", "id": tool_id, "name": name, "input": {}},
        }
    ]
    for part in json_parts:
        events.append(
            {
                "type": "content_block_delta",
                "index": index,
                "delta": {"type": "input_json_delta", "partial_json": part},
            }
        )
    events.append({"type": "content_block_stop", "index": index})
    return events


def message_stop() -> dict[str, Any]:
    return {"type": "message_stop"}


def full_turn(*blocks: list[dict[str, Any]]) -> bytes:
    """A complete streamed turn: message_start, the given blocks, message_delta, message_stop."""
    payloads: list[dict[str, Any]] = [message_start()]
    for block in blocks:
        payloads.extend(block)
    payloads.append({"type": "message_delta", "delta": {"stop_reason": "end_turn"}})
    payloads.append(message_stop())
    return sse_body(*payloads)


class RecordingHandler:
    """TurnHandler that records every callback in order."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []

    async def on_text(self, text: str) -> None:
        self.calls.append(("text", text))

    async def on_tool(self, tool: ToolUseBlock) -> None:
        self.calls.append(("tool", tool))

    async def on_status(self, status: dict[str, Any]) -> None:
        self.calls.append(("status", status))

    async def on_end(self, blocks: list[AssistantBlock]) -> None:
        self.calls.append(("end", blocks))

    async def on_error(self, error: BaseException) -> None:
        self.calls.append(("error", error))

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def of(self, name: str) -> list[Any]:
        return [value for call, value in self.calls if call == name]
