"""Offline stand-in for an OpenAI SDK client, used when ``mock_mode`` is set."""

from __future__ import annotations

import json
import time
from types import SimpleNamespace
from typing import Any


class MockChatStream:
    """Async iterator of chunk dicts with the ``close`` hook of the SDK stream."""

    def __init__(self, chunks: list[dict]):
        self._chunks = list(chunks)
        self.closed = False

    def __aiter__(self) -> MockChatStream:
        return self

    async def __anext__(self) -> dict:
        if self.closed or not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)

    async def close(self) -> None:
        self.closed = True


class MockChatCompletionsClient:
    """Answers every request with a fixed text reply, or fixed tool calls.

    ``tool_calls`` entries are ``(name, arguments)`` pairs.
    """

    def __init__(
        self,
        text: str = "This is a mock response.",
        tool_calls: list[tuple[str, dict]] | None = None,
    ):
        self.text = text
        self.tool_calls = tool_calls or []
        self.requests: list[dict] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _wire_tool_calls(self) -> list[dict]:
        return [
            {
                "id": f"call_mock_{i}",
                "type": "function",
                "function": {"name": name, "arguments": json.dumps(arguments)},
            }
            for i, (name, arguments) in enumerate(self.tool_calls)
        ]

    async def _create(self, **kwargs: Any) -> dict | MockChatStream:
        self.requests.append(kwargs)
        model = kwargs.get("model", "mock-model")
        created = int(time.time())
        finish_reason = "tool_calls" if self.tool_calls else "stop"

        if kwargs.get("stream"):
            base = {"id": "chatcmpl-mock", "object": "chat.completion.chunk", "created": created, "model": model}
            chunks = [
                {**base, "choices": [{"index": 0, "delta": {"role": "assistant", "content": self.text}, "finish_reason": None}]}
            ]
            for index, tool_call in enumerate(self._wire_tool_calls()):
                delta = {"tool_calls": [{**tool_call, "index": index}]}
                chunks.append({**base, "choices": [{"index": 0, "delta": delta, "finish_reason": None}]})
            chunks.append({**base, "choices": [{"index": 0, "delta": {}, "finish_reason": finish_reason}]})
            chunks.append({**base, "choices": [], "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}})
            return MockChatStream(chunks)

        message: dict = {"role": "assistant", "content": self.text}
        if self.tool_calls:
            message["tool_calls"] = self._wire_tool_calls()
        return {
            "id": "chatcmpl-mock",
            "object": "chat.completion",
            "created": created,
            "model": model,
            "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        }
