"""Accumulation state machine for chat.completion.chunk streams.

Every provider in the gateway streams OpenAI-shaped chunks, so the state
machine lives here once and each provider's stream adapter owns an
instance of ``ChatCompletionAccumulator``. State is per instance: one
adapter per connection, nothing shared between streams.

Phases: ``idle`` until the first chunk, ``streaming`` afterwards, ``final``
once a choice carries a finish reason or a choice-less chunk carries usage.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

from gateway.schemas.common import UsageView
from gateway.schemas.tools import ToolCall
from gateway.streaming.sse import DONE_FRAME, format_sse
from gateway.utils.tool_content import decode_tool_call


class StreamPhase(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    FINAL = "final"


@dataclass
class AccumulatedToolCall:
    """A tool call being assembled from stream fragments."""

    id: str = ""
    name: str = ""
    arguments: str = ""
    type: str = "function"

    def to_wire(self) -> dict:
        if self.type == "custom":
            return {
                "id": self.id,
                "type": "custom",
                "custom": {"name": self.name, "input": self.arguments},
            }
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class StreamTiming:
    start_time: float = field(default_factory=time.time)
    first_chunk_time: float | None = None


@dataclass
class StreamAccumulatorState:
    """Everything learned from one stream so far.

    ``text`` and ``reasoning`` only grow; ``stop_reason`` is written once.
    """

    response_id: str = ""
    model: str = ""
    text: str = ""
    reasoning: str = ""
    tool_calls: list[AccumulatedToolCall] = field(default_factory=list)
    raw_tool_call_events: list[dict] = field(default_factory=list)
    usage: UsageView | None = None
    stop_reason: str | None = None
    phase: StreamPhase = StreamPhase.IDLE
    timing: StreamTiming = field(default_factory=StreamTiming)

    @property
    def is_final(self) -> bool:
        return self.phase is StreamPhase.FINAL


@dataclass(frozen=True)
class ChunkProcessingResult:
    """What the proxy should do with one processed chunk."""

    sse_data: str | None = None
    is_tool_call_chunk: bool = False
    is_final: bool = False


class ChatCompletionAccumulator:
    """Rebuilds a chat completion from its chunks."""

    def __init__(self, provider: str = "openai", id_prefix: str = "chatcmpl"):
        self.provider = provider
        self.state = StreamAccumulatorState()
        self._id_prefix = id_prefix
        # provider stream index -> position in state.tool_calls
        self._slots: dict[int, int] = {}

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def process_chunk(self, chunk: dict) -> ChunkProcessingResult:
        state = self.state
        if state.timing.first_chunk_time is None:
            state.timing.first_chunk_time = time.time()
        if state.phase is StreamPhase.IDLE:
            state.phase = StreamPhase.STREAMING

        state.response_id = chunk.get("id") or state.response_id
        state.model = chunk.get("model") or state.model

        usage = chunk.get("usage")
        if usage:
            state.usage = UsageView.from_openai_usage(usage)

        choices = chunk.get("choices") or []
        if not choices:
            if usage:
                state.phase = StreamPhase.FINAL
            return ChunkProcessingResult(is_final=state.is_final)

        choice = choices[0]
        delta = choice.get("delta") or {}

        content = delta.get("content")
        if isinstance(content, str) and content:
            state.text += content

        reasoning = delta.get("reasoning_content")
        if isinstance(reasoning, str) and reasoning:
            state.reasoning += reasoning

        tool_deltas = delta.get("tool_calls") or []
        has_real_field = bool(content or tool_deltas or delta.get("role") or reasoning)
        sse_data = format_sse(chunk) if has_real_field else None

        if tool_deltas:
            self._merge_tool_deltas(tool_deltas)
            state.raw_tool_call_events.append(chunk)

        finish_reason = choice.get("finish_reason")
        if finish_reason:
            if state.stop_reason is None:
                state.stop_reason = finish_reason
            state.phase = StreamPhase.FINAL

        return ChunkProcessingResult(
            sse_data=sse_data,
            is_tool_call_chunk=bool(tool_deltas),
            is_final=state.is_final,
        )

    def _merge_tool_deltas(self, tool_deltas: list[dict]) -> None:
        for position, fragment in enumerate(tool_deltas):
            index = fragment.get("index", position)
            function = fragment.get("function") or {}
            custom = fragment.get("custom") or {}

            slot = self._slots.get(index)
            if slot is None:
                slot = len(self.state.tool_calls)
                self._slots[index] = slot
                kind = fragment.get("type") or ("custom" if custom else "function")
                self.state.tool_calls.append(AccumulatedToolCall(type=kind))
            call = self.state.tool_calls[slot]

            if fragment.get("id"):
                call.id = fragment["id"]
            name = function.get("name") or custom.get("name")
            if name:
                call.name = name
            arguments = function.get("arguments") if function else custom.get("input")
            if arguments:
                call.arguments += arguments

    # ------------------------------------------------------------------
    # Canonical views
    # ------------------------------------------------------------------

    def get_tool_calls(self) -> list[ToolCall]:
        return [decode_tool_call(tc.to_wire(), self.provider) for tc in self.state.tool_calls]

    # ------------------------------------------------------------------
    # Frame synthesis
    # ------------------------------------------------------------------

    def _response_id(self) -> str:
        return self.state.response_id or f"{self._id_prefix}-{int(time.time() * 1000)}"

    def _chunk(self, delta: dict, finish_reason: str | None = None) -> dict:
        return {
            "id": self._response_id(),
            "object": "chat.completion.chunk",
            "created": int(time.time()),
            "model": self.state.model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }

    def format_text_delta_sse(self, text: str) -> str:
        return format_sse(self._chunk({"content": text}))

    def format_complete_text_sse(self, text: str) -> list[str]:
        return [format_sse(self._chunk({"role": "assistant", "content": text}))]

    def format_end_sse(self, finish_reason: str | None = None) -> str:
        """Finish chunk plus the DONE sentinel.

        ``finish_reason`` overrides the recorded reason, e.g. "stop" after a
        refusal replaced the model's tool calls.
        """
        final_chunk = self._chunk({}, finish_reason or self.state.stop_reason or "stop")
        return format_sse(final_chunk) + DONE_FRAME

    def get_raw_tool_call_events(self) -> list[str]:
        return [format_sse(event) for event in self.state.raw_tool_call_events]

    def to_provider_response(self) -> dict:
        state = self.state
        message: dict = {"role": "assistant", "content": state.text or None}
        if state.reasoning:
            message["reasoning_content"] = state.reasoning
        if state.tool_calls:
            message["tool_calls"] = [tc.to_wire() for tc in state.tool_calls]

        usage = state.usage or UsageView()
        return {
            "id": self._response_id(),
            "object": "chat.completion",
            "created": int(time.time()),
            "model": state.model,
            "choices": [
                {
                    "index": 0,
                    "message": message,
                    "finish_reason": state.stop_reason or "stop",
                }
            ],
            "usage": {
                "prompt_tokens": usage.input_tokens,
                "completion_tokens": usage.output_tokens,
                "total_tokens": usage.input_tokens + usage.output_tokens,
            },
        }
