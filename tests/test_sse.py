"""Tests for SSE framing and incremental decoding."""

from __future__ import annotations

import json

import pytest

from gateway.streaming.sse import DONE_FRAME, SSEDecoder, format_sse, iter_sse_chunks


def test_format_sse_is_compact_data_frame():
    frame = format_sse({"a": 1, "b": "é"})
    assert frame == 'data: {"a":1,"b":"é"}\n\n'


def test_done_frame():
    assert DONE_FRAME == "data: [DONE]\n\n"


class TestSSEDecoder:
    def test_complete_frames(self):
        decoder = SSEDecoder("openai")
        chunks = decoder.feed(b'data: {"id": "1"}\n\ndata: {"id": "2"}\n\n')
        assert chunks == [{"id": "1"}, {"id": "2"}]

    def test_partial_line_is_buffered(self):
        decoder = SSEDecoder("openai")

        assert decoder.feed(b'data: {"id": ') == []
        assert decoder.feed(b'"1"}\n\n') == [{"id": "1"}]

    def test_split_utf8_sequence(self):
        payload = 'data: {"text": "héllo"}\n\n'.encode()
        split = payload.index("é".encode()) + 1
        decoder = SSEDecoder("openai")

        first = decoder.feed(payload[:split])
        second = decoder.feed(payload[split:])

        assert first == []
        assert second == [{"text": "héllo"}]

    def test_done_sentinel_sets_flag(self):
        decoder = SSEDecoder("openai")
        assert decoder.feed(b"data: [DONE]\n\n") == []
        assert decoder.done

    def test_invalid_json_is_skipped(self):
        decoder = SSEDecoder("minimax")
        chunks = decoder.feed(b'data: {not json}\n\ndata: {"ok": true}\n\n')
        assert chunks == [{"ok": True}]

    def test_comments_and_event_lines_are_ignored(self):
        decoder = SSEDecoder("openai")
        chunks = decoder.feed(b': keep-alive\nevent: message\ndata: {"id": "1"}\n\n')
        assert chunks == [{"id": "1"}]

    def test_flush_decodes_unterminated_frame(self):
        decoder = SSEDecoder("openai")
        assert decoder.feed(b'data: {"id": "last"}') == []
        assert decoder.flush() == [{"id": "last"}]

    def test_crlf_line_endings(self):
        decoder = SSEDecoder("openai")
        assert decoder.feed(b'data: {"id": "1"}\r\n\r\n') == [{"id": "1"}]


async def _byte_stream(parts: list[bytes]):
    for part in parts:
        yield part


@pytest.mark.asyncio
async def test_iter_sse_chunks_stops_at_done():
    frames = [json.dumps({"n": n}) for n in range(3)]
    body = "".join(f"data: {f}\n\n" for f in frames) + "data: [DONE]\n\n" + 'data: {"n": 99}\n\n'
    raw = body.encode()
    parts = [raw[i:i + 7] for i in range(0, len(raw), 7)]

    chunks = [c async for c in iter_sse_chunks(_byte_stream(parts), "openai")]

    assert chunks == [{"n": 0}, {"n": 1}, {"n": 2}]


@pytest.mark.asyncio
async def test_iter_sse_chunks_flushes_tail():
    chunks = [c async for c in iter_sse_chunks(_byte_stream([b'data: {"n": 1}']))]
    assert chunks == [{"n": 1}]
