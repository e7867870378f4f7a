"""Server-sent event framing.

Incremental decoder for ``text/event-stream`` bodies:

    event: content_block_delta
    data: {"type": "content_block_delta", ...}
    <blank line>

Records are separated by a blank line. Within a record, ``data:`` lines are
joined with newlines and parsed as JSON; ``event:`` names the record; lines
starting with ``:`` are comments. Bytes may arrive cut at any point,
including inside a multi-byte character or between CR and LF, and decode
the same as if delivered whole.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

log = logging.getLogger(__name__)

RECORD_SEPARATOR = "\n\n"
DONE_SENTINEL = "[DONE]"


def parse_record(record: str) -> dict[str, Any] | None:
    """Parse one SSE record (without its trailing blank line).

    Returns:
        The JSON object carried by the record, or None for records with no
        data, the ``[DONE]`` sentinel, or data that is not a JSON object.
        When the record names an event and the payload has no ``type``, the
        event name is copied into ``type``.
    """
    data_lines: list[str] = []
    event_name: str | None = None

    for line in record.split("\n"):
        line = line.rstrip("\r")
        if not line or line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data_lines.append(value)
        elif name == "event":
            event_name = value.strip() or None

    if not data_lines:
        return None

    data = "\n".join(data_lines).strip()
    if not data or data == DONE_SENTINEL:
        return None

    try:
        payload = json.loads(data)
    except ValueError:
        log.warning("sse_record_parse_failed data=%r", data[:200])
        return None

    if not isinstance(payload, dict):
        log.warning("sse_record_not_object data=%r", data[:200])
        return None

    if event_name and "type" not in payload:
        payload["type"] = event_name
    return payload


class SSEDecoder:
    """Accumulates raw bytes and yields complete event payloads.

    Example:
        >>> decoder = SSEDecoder()
        >>> decoder.feed(b'data: {"type": "ping"}\\n')
        []
        >>> decoder.feed(b"\\n")
        [{'type': 'ping'}]
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> list[dict[str, Any]]:
        """Add bytes; return the events whose records are now complete."""
        self._buffer += self._decoder.decode(data)
        return self._drain()

    def close(self) -> list[dict[str, Any]]:
        """Flush a trailing record that was not followed by a blank line."""
        self._buffer += self._decoder.decode(b"", final=True)
        events = self._drain()
        remainder, self._buffer = self._buffer, ""
        if remainder.strip():
            payload = parse_record(remainder)
            if payload is not None:
                events.append(payload)
        return events

    def _drain(self) -> list[dict[str, Any]]:
        # A CR left dangling at the end pairs with the LF of the next feed
        self._buffer = self._buffer.replace("\r\n", "\n")
        events: list[dict[str, Any]] = []
        while True:
            idx = self._buffer.find(RECORD_SEPARATOR)
            if idx == -1:
                break
            record = self._buffer[:idx]
            self._buffer = self._buffer[idx + len(RECORD_SEPARATOR) :]
            payload = parse_record(record)
            if payload is not None:
                events.append(payload)
        return events


async def iter_sse_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[dict[str, Any]]:
    """Decode an async byte stream into SSE event payloads."""
    decoder = SSEDecoder()
    async for chunk in chunks:
        for payload in decoder.feed(chunk):
            yield payload
    for payload in decoder.close():
        yield payload
