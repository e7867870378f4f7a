"""Anthropic Messages API provider.

Sends the full history with the create_file tool schema, requests a streamed
response and folds the server-sent events into content blocks:

- content_block_start (text | tool_use) opens a block
- content_block_delta appends text_delta text or input_json_delta fragments
- content_block_stop closes the open tool block and parses its JSON input
- message_stop completes the turn

See https://docs.anthropic.com/en/api/messages-streaming for the wire format.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import ValidationError

from toolgate.chat.errors import UpstreamError
from toolgate.chat.provider import TurnHandler
from toolgate.chat.schemas import (
    CREATE_FILE_TOOL_SCHEMA,
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    InputJsonDelta,
    MessageStop,
    StreamError,
    TextDelta,
    parse_provider_event,
    validate_tool_input,
)
from toolgate.chat.sse import iter_sse_events
from toolgate.chat.types import (
    CREATE_FILE_TOOL,
    AssistantBlock,
    Message,
    TextBlock,
    ToolUseBlock,
)
from toolgate.config.schema import (
    DEFAULT_API_URL,
    DEFAULT_API_VERSION,
    DEFAULT_MODEL,
    LLMConfig,
)

log = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an assistant that helps the user create and inspect files.
When creating a file is appropriate, call the create_file tool with the path and content fields.
Wait for the tool_result before continuing your answer.
If the creation is denied, answer without using the tool."""


def placeholder_input() -> dict[str, Any]:
    """Input recorded for a tool call whose JSON could not be used."""
    return {"path": "", "content": ""}


def parse_tool_input(raw: str) -> dict[str, Any] | None:
    """Parse accumulated input_json_delta fragments into create_file input."""
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError as e:
        log.warning("anthropic_tool_input_parse_failed: %s", e)
        return None
    tool_input = validate_tool_input(parsed)
    if tool_input is None:
        log.warning("anthropic_tool_input_invalid raw=%r", raw[:200])
        return None
    return tool_input.to_dict()


@dataclass
class _TextDraft:
    parts: list[str] = field(default_factory=list)

    def freeze(self) -> TextBlock:
        return TextBlock("".join(self.parts))


@dataclass
class _ToolDraft:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=placeholder_input)
    json_parts: list[str] = field(default_factory=list)

    def freeze(self) -> ToolUseBlock:
        return ToolUseBlock(id=self.id, name=self.name, input=dict(self.input))


class TurnAssembler:
    """Folds validated stream events into ordered assistant blocks.

    Adjacent text runs with no block start in between end up in one text
    block. Blocks are reported in the order their start events arrived.
    """

    def __init__(self, handler: TurnHandler) -> None:
        self._handler = handler
        self._drafts: list[_TextDraft | _ToolDraft] = []
        self._open_tool: _ToolDraft | None = None
        self.finished = False

    @property
    def blocks(self) -> list[AssistantBlock]:
        return [draft.freeze() for draft in self._drafts]

    def _text_draft(self) -> _TextDraft:
        if self._drafts and isinstance(self._drafts[-1], _TextDraft):
            return self._drafts[-1]
        draft = _TextDraft()
        self._drafts.append(draft)
        return draft

    async def apply(
        self,
        event: ContentBlockStart | ContentBlockDelta | ContentBlockStop | MessageStop | StreamError,
    ) -> bool:
        """Apply one event. Returns True once the message is complete."""
        if isinstance(event, ContentBlockStart):
            if event.content_block.type == "text":
                self._text_draft()
            else:
                self._open_tool = _ToolDraft(
                    id=event.content_block.id or "",
                    name=event.content_block.name or CREATE_FILE_TOOL,
                )
                self._drafts.append(self._open_tool)

        elif isinstance(event, ContentBlockDelta):
            delta = event.delta
            if isinstance(delta, TextDelta):
                if delta.text:
                    await self._handler.on_text(delta.text)
                self._text_draft().parts.append(delta.text)
            elif isinstance(delta, InputJsonDelta) and self._open_tool is not None:
                self._open_tool.json_parts.append(delta.partial_json)

        elif isinstance(event, ContentBlockStop):
            tool, self._open_tool = self._open_tool, None
            if tool is not None:
                tool.input = parse_tool_input("".join(tool.json_parts)) or placeholder_input()
                tool.json_parts.clear()
                await self._handler.on_tool(tool.freeze())

        elif isinstance(event, MessageStop):
            self.finished = True
            await self._handler.on_status({"ai_typing": False})
            await self._handler.on_end(self.blocks)
            return True

        elif isinstance(event, StreamError):
            raise UpstreamError(None, detail=event.error, message="anthropic_stream_error")

        return False


async def _read_error_body(response: httpx.Response) -> Any:
    body = await response.aread()
    text = body.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text or None


class AnthropicProvider:
    """Streams turns from the Anthropic Messages API over httpx.

    Usage:
        provider = AnthropicProvider(api_key="sk-ant-...")
        await provider.stream_turn(session.history, handler)
        await provider.aclose()

    Pass ``client`` to share a connection pool or to inject an
    ``httpx.MockTransport`` in tests; an injected client is not closed by
    ``aclose``.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        api_url: str = DEFAULT_API_URL,
        api_version: str = DEFAULT_API_VERSION,
        max_tokens: int = 4096,
        timeout: float | None = 120.0,
        system_prompt: str = SYSTEM_PROMPT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._api_url = api_url
        self._api_version = api_version
        self._max_tokens = max_tokens
        self._system_prompt = system_prompt
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))

    @classmethod
    def from_config(
        cls,
        config: LLMConfig,
        api_key: str,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> AnthropicProvider:
        return cls(
            api_key,
            model=config.model,
            api_url=config.api_url,
            api_version=config.api_version,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
            client=client,
        )

    @property
    def model(self) -> str:
        return self._model

    def build_payload(self, messages: Sequence[Message]) -> dict[str, Any]:
        return {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": self._system_prompt,
            "messages": [m.to_dict() for m in messages],
            "tools": [CREATE_FILE_TOOL_SCHEMA],
            "stream": True,
        }

    def _headers(self) -> dict[str, str]:
        return {
            "content-type": "application/json",
            "accept": "text/event-stream",
            "x-api-key": self._api_key,
            "anthropic-version": self._api_version,
        }

    async def stream_turn(self, messages: Sequence[Message], handler: TurnHandler) -> None:
        """Run one turn; every failure is reported through ``handler.on_error``."""
        started = time.perf_counter()
        try:
            await handler.on_status({"ai_typing": True})
            assembler = TurnAssembler(handler)
            async with self._client.stream(
                "POST",
                self._api_url,
                headers=self._headers(),
                json=self.build_payload(messages),
            ) as response:
                if not response.is_success:
                    raise UpstreamError(response.status_code, await _read_error_body(response))

                async with aclosing(iter_sse_events(response.aiter_bytes())) as events:
                    async for raw in events:
                        try:
                            event = parse_provider_event(raw)
                        except ValidationError:
                            log.warning("anthropic_event_invalid raw=%r", raw)
                            continue
                        if event is None:
                            continue
                        if await assembler.apply(event):
                            break

            if not assembler.finished:
                raise UpstreamError(None, "stream_incomplete", message="anthropic_stream_incomplete")
        except Exception as exc:
            await handler.on_status({"ai_typing": False})
            await handler.on_error(exc)
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            log.info("anthropic_stream_finished duration_ms=%.1f", duration_ms)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
