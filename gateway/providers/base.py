"""Structural contracts every provider module satisfies.

Providers are not subclasses of anything here: each implements these
protocols on its own, and OpenAI-compatible providers reuse another
provider's adapters by wrapping them.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import Any, Protocol

from gateway.schemas.common import ClientOptions, ToolCompressionStats, UsageView
from gateway.schemas.messages import CanonicalMessage
from gateway.schemas.tools import ToolCall, ToolDefinition, ToolResult
from gateway.streaming.accumulator import ChunkProcessingResult, StreamAccumulatorState


class RequestAdapter(Protocol):
    """Canonical read/write view over a provider-native request body.

    Mutations are buffered and only materialized by ``to_provider_request``.
    """

    provider: str

    def get_model(self) -> str: ...

    def is_streaming(self) -> bool: ...

    def get_messages(self) -> list[CanonicalMessage]: ...

    def get_tool_results(self) -> list[ToolResult]: ...

    def get_tools(self) -> list[ToolDefinition]: ...

    def has_tools(self) -> bool: ...

    def get_provider_messages(self) -> list[dict]: ...

    def get_original_request(self) -> dict: ...

    def set_model(self, model: str) -> None: ...

    def update_tool_result(self, tool_call_id: str, content: str) -> None: ...

    def apply_tool_result_updates(self, updates: Mapping[str, str]) -> None: ...

    def apply_toon_compression(self, model: str) -> ToolCompressionStats: ...

    def to_provider_request(self) -> dict: ...


class ResponseAdapter(Protocol):
    """Canonical read view over a completed provider response."""

    provider: str

    def get_id(self) -> str: ...

    def get_model(self) -> str: ...

    def get_text(self) -> str: ...

    def get_tool_calls(self) -> list[ToolCall]: ...

    def has_tool_calls(self) -> bool: ...

    def get_usage(self) -> UsageView: ...

    def get_finish_reasons(self) -> list[str]: ...

    def get_original_response(self) -> dict: ...

    def to_refusal_response(self, refusal_message: str, content_message: str) -> dict: ...


class StreamAdapter(Protocol):
    """Per-connection accumulator over provider stream chunks."""

    provider: str
    state: StreamAccumulatorState

    def process_chunk(self, chunk: dict) -> ChunkProcessingResult: ...

    def get_sse_headers(self) -> dict[str, str]: ...

    def format_text_delta_sse(self, text: str) -> str: ...

    def format_complete_text_sse(self, text: str) -> list[str]: ...

    def format_end_sse(self, finish_reason: str | None = None) -> str: ...

    def get_raw_tool_call_events(self) -> list[str]: ...

    def get_tool_calls(self) -> list[ToolCall]: ...

    def to_provider_response(self) -> dict: ...


class LLMProvider(Protocol):
    """Adapter factory plus transport hooks for one upstream provider."""

    provider: str
    interaction_type: str

    def create_request_adapter(self, request: dict) -> RequestAdapter: ...

    def create_response_adapter(self, response: dict) -> ResponseAdapter: ...

    def create_stream_adapter(self) -> StreamAdapter: ...

    def extract_api_key(self, headers: Mapping[str, str]) -> str | None: ...

    def get_base_url(self) -> str | None: ...

    def create_client(self, api_key: str | None, options: ClientOptions | None = None) -> Any: ...

    async def execute(self, client: Any, request: dict) -> dict: ...

    def execute_stream(self, client: Any, request: dict) -> AsyncIterator[dict]: ...

    def extract_error_message(self, error: Any) -> str: ...
