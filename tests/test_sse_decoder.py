"""Tests for the incremental server-sent-event decoder."""

from __future__ import annotations

import pytest

from tests.utils import full_turn, text_events, tool_events
from toolgate.chat.sse import SSEDecoder, iter_sse_events, parse_record


def decode_in_pieces(data: bytes, cuts: list[int]) -> list[dict]:
    decoder = SSEDecoder()
    events: list[dict] = []
    start = 0
    for cut in [*cuts, len(data)]:
        events.extend(decoder.feed(data[start:cut]))
        start = cut
    events.extend(decoder.close())
    return events


class TestParseRecord:
    """Single-record parsing."""

    def test_data_line(self) -> None:
        assert parse_record('data: {"type": "ping"}') == {"type": "ping"}

    def test_event_name_fills_missing_type(self) -> None:
        assert parse_record('event: message_stop\ndata: {}') == {"type": "message_stop"}

    def test_payload_type_wins_over_event_name(self) -> None:
        assert parse_record('event: other\ndata: {"type": "ping"}') == {"type": "ping"}

    def test_multiline_data_joined(self) -> None:
        assert parse_record('data: {"type":\ndata: "ping"}') == {"type": "ping"}

    def test_comments_ignored(self) -> None:
        assert parse_record(': keep-alive\ndata: {"a": 1}') == {"a": 1}

    def test_no_space_after_colon(self) -> None:
        assert parse_record('data:{"a": 1}') == {"a": 1}

    @pytest.mark.parametrize(
        "record",
        [
            ": just a comment",
            "event: ping",
            "data: [DONE]",
            "data: {not json",
            "data: [1, 2]",
            "data:",
        ],
    )
    def test_records_without_object_payload(self, record: str) -> None:
        assert parse_record(record) is None


class TestSSEDecoder:
    """Framing across reads."""

    def test_waits_for_blank_line(self) -> None:
        decoder = SSEDecoder()
        assert decoder.feed(b'data: {"a": 1}\n') == []
        assert decoder.feed(b"\n") == [{"a": 1}]

    def test_several_records_in_one_read(self) -> None:
        decoder = SSEDecoder()
        events = decoder.feed(b'data: {"a": 1}\n\ndata: {"b": 2}\n\n')
        assert events == [{"a": 1}, {"b": 2}]

    def test_crlf_line_endings(self) -> None:
        decoder = SSEDecoder()
        events = decoder.feed(b'event: ping\r\ndata: {"x": 1}\r\n\r\n')
        assert events == [{"type": "ping", "x": 1}]

    def test_crlf_split_between_reads(self) -> None:
        decoder = SSEDecoder()
        assert decoder.feed(b'data: {"x": 1}\r\n\r') == []
        assert decoder.feed(b"\n") == [{"x": 1}]

    def test_multibyte_character_split(self) -> None:
        data = 'data: {"text": "ação"}\n\n'.encode("utf-8")
        split = data.index("ç".encode("utf-8")) + 1
        decoder = SSEDecoder()
        assert decoder.feed(data[:split]) == []
        assert decoder.feed(data[split:]) == [{"text": "ação"}]

    def test_close_flushes_trailing_record(self) -> None:
        decoder = SSEDecoder()
        assert decoder.feed(b'data: {"last": true}') == []
        assert decoder.close() == [{"last": True}]

    def test_close_on_empty_buffer(self) -> None:
        assert SSEDecoder().close() == []

    def test_invalid_record_does_not_stop_stream(self) -> None:
        decoder = SSEDecoder()
        events = decoder.feed(b'data: {oops\n\ndata: {"ok": 1}\n\n')
        assert events == [{"ok": 1}]


class TestBufferBoundaryLaw:
    """Any split of the byte stream decodes like the whole stream."""

    BODY = full_turn(
        text_events(0, "Olá, ", "mundo 🌍"),
        tool_events(1, "toolu_1", '{"path": "x.txt", ', '"content": "çé"}'),
    )

    def test_every_single_cut(self) -> None:
        whole = decode_in_pieces(self.BODY, [])
        for cut in range(1, len(self.BODY)):
            assert decode_in_pieces(self.BODY, [cut]) == whole

    def test_byte_at_a_time(self) -> None:
        whole = decode_in_pieces(self.BODY, [])
        assert decode_in_pieces(self.BODY, list(range(1, len(self.BODY)))) == whole

    @pytest.mark.parametrize("step", [2, 3, 7, 64])
    def test_fixed_steps(self, step: int) -> None:
        whole = decode_in_pieces(self.BODY, [])
        cuts = list(range(step, len(self.BODY), step))
        assert decode_in_pieces(self.BODY, cuts) == whole


async def test_iter_sse_events() -> None:
    async def chunks():
        yield b'data: {"a"'
        yield b': 1}\n\nda'
        yield b'ta: {"b": 2}'

    events = [event async for event in iter_sse_events(chunks())]
    assert events == [{"a": 1}, {"b": 2}]
