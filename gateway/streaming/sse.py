"""Server-sent event framing for chat-completion streams.

Upstreams send ``data: <json>\\n\\n`` frames terminated by ``data: [DONE]``;
the gateway emits the same shape to its clients.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncIterator

import structlog

logger = structlog.get_logger()

DONE_SENTINEL = "[DONE]"
DONE_FRAME = f"data: {DONE_SENTINEL}\n\n"

SSE_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(payload: dict) -> str:
    """Serialize one chunk as an SSE data frame."""
    return f"data: {json.dumps(payload, ensure_ascii=False, separators=(',', ':'))}\n\n"


class SSEDecoder:
    """Incremental decoder from raw response bytes to JSON chunks.

    Bytes are fed as they arrive; a trailing partial line (or a split UTF-8
    sequence) is kept until the next ``feed``. Frames that are not valid JSON
    are logged and skipped.
    """

    def __init__(self, provider: str = ""):
        self.provider = provider
        self.done = False
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, data: bytes) -> list[dict]:
        self._buffer += self._utf8.decode(data)
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def flush(self) -> list[dict]:
        """Decode whatever is left once the upstream closes."""
        self._buffer += self._utf8.decode(b"", final=True)
        lines, self._buffer = [self._buffer], ""
        return self._parse_lines(lines)

    def _parse_lines(self, lines: list[str]) -> list[dict]:
        chunks: list[dict] = []
        for line in lines:
            stripped = line.strip()
            if not stripped.startswith("data:"):
                # blank separators, comments (": keep-alive") and event: lines
                continue
            data = stripped[len("data:"):].strip()
            if data == DONE_SENTINEL:
                self.done = True
                break
            if not data:
                continue
            try:
                parsed = json.loads(data)
            except ValueError as e:
                logger.warning(
                    "sse_frame_decode_failed",
                    provider=self.provider,
                    line=stripped[:200],
                    error=str(e),
                )
                continue
            if isinstance(parsed, dict):
                chunks.append(parsed)
        return chunks


async def iter_sse_chunks(
    byte_stream: AsyncIterator[bytes], provider: str = ""
) -> AsyncIterator[dict]:
    """Yield decoded JSON chunks from an async byte stream."""
    decoder = SSEDecoder(provider)
    async for data in byte_stream:
        for chunk in decoder.feed(data):
            yield chunk
        if decoder.done:
            return
    for chunk in decoder.flush():
        yield chunk
