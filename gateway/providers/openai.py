"""OpenAI chat-completions provider.

Besides the OpenAI adapters, which every OpenAI-shaped provider reuses with
its own provider id, this module owns the AsyncOpenAI transport helpers
that OpenRouter, Mistral and Z.ai call with their own base URL.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import Any

import structlog
from openai import APIConnectionError, AsyncOpenAI
from openai.types.chat.completion_create_params import CompletionCreateParamsBase

from gateway.compression.compressor import compress_tool_messages
from gateway.config import Settings, get_settings
from gateway.errors import MissingCredentialsError, UnreadableResponseError, default_error_message
from gateway.providers.chat_completions import (
    apply_tool_result_updates,
    authorization_header,
    build_request,
    collect_tool_definitions,
    collect_tool_results,
    finish_reasons,
    first_message,
    refusal_response,
    response_text,
    response_tool_calls,
    response_usage,
    strip_bearer,
    streaming_request,
    to_canonical_messages,
    tool_content_changes,
)
from gateway.providers.mock import MockChatCompletionsClient
from gateway.schemas.common import ClientOptions, ToolCompressionStats, UsageView
from gateway.schemas.messages import CanonicalMessage
from gateway.schemas.tools import ToolCall, ToolDefinition, ToolResult
from gateway.streaming.accumulator import ChatCompletionAccumulator, ChunkProcessingResult
from gateway.streaming.sse import SSE_HEADERS

logger = structlog.get_logger()

_SDK_PARAMS = frozenset(
    CompletionCreateParamsBase.__required_keys__
    | CompletionCreateParamsBase.__optional_keys__
    | {"stream"}
)


# ---------------------------------------------------------------------------
# Transport helpers shared by OpenAI-compatible providers
# ---------------------------------------------------------------------------


def openai_sdk_kwargs(request: dict) -> dict:
    """Split a wire body into SDK keyword arguments.

    Provider-specific fields the SDK does not know are sent via ``extra_body``.
    """
    kwargs = {k: v for k, v in request.items() if k in _SDK_PARAMS}
    extra = {k: v for k, v in request.items() if k not in _SDK_PARAMS}
    if extra:
        kwargs["extra_body"] = extra
    return kwargs


def as_dict(obj: Any) -> dict:
    """Turn an SDK response or chunk model into its wire dict."""
    if isinstance(obj, dict):
        return obj
    return obj.model_dump(exclude_unset=True)


def build_openai_client(
    provider: str,
    api_key: str | None,
    base_url: str,
    options: ClientOptions,
    settings: Settings,
) -> AsyncOpenAI | MockChatCompletionsClient:
    if options.mock_mode:
        return MockChatCompletionsClient()
    if not api_key:
        raise MissingCredentialsError(provider)
    return AsyncOpenAI(
        api_key=strip_bearer(api_key),
        base_url=options.base_url or base_url,
        default_headers=options.default_headers or None,
        timeout=options.timeout or settings.upstream_timeout_seconds,
        # Retrying is the caller's decision
        max_retries=0,
    )


async def create_chat_completion(provider: str, client: Any, request: dict) -> dict:
    try:
        response = await client.chat.completions.create(
            **openai_sdk_kwargs({**request, "stream": False})
        )
    except APIConnectionError as e:
        logger.error("upstream_unreachable", provider=provider, error=str(e))
        raise UnreadableResponseError(f"Could not read response from {provider}: {e}") from e
    return as_dict(response)


async def stream_chat_completion(
    provider: str, client: Any, request: dict
) -> AsyncIterator[dict]:
    try:
        stream = await client.chat.completions.create(
            **openai_sdk_kwargs(streaming_request(request))
        )
    except APIConnectionError as e:
        logger.error("upstream_unreachable", provider=provider, error=str(e))
        raise UnreadableResponseError(f"Could not read stream from {provider}: {e}") from e

    try:
        async for chunk in stream:
            yield as_dict(chunk)
    finally:
        await stream.close()


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class OpenAIRequestAdapter:
    """Request adapter for the chat-completions body.

    Model and tool-result overrides are buffered here and merged into a copy
    of the original body by ``to_provider_request``.
    """

    def __init__(self, request: dict, provider: str = "openai"):
        self.provider = provider
        self._request = request
        self._model_override: str | None = None
        self._tool_result_updates: dict[str, str] = {}

    def _messages(self) -> list[dict]:
        return self._request.get("messages") or []

    def get_model(self) -> str:
        return self._model_override or self._request.get("model", "")

    def is_streaming(self) -> bool:
        return self._request.get("stream") is True

    def get_messages(self) -> list[CanonicalMessage]:
        return to_canonical_messages(self._messages(), self.provider)

    def get_tool_results(self) -> list[ToolResult]:
        return collect_tool_results(self._messages())

    def get_tools(self) -> list[ToolDefinition]:
        return collect_tool_definitions(self._request.get("tools"))

    def has_tools(self) -> bool:
        return bool(self._request.get("tools"))

    def get_provider_messages(self) -> list[dict]:
        return self._messages()

    def get_original_request(self) -> dict:
        return self._request

    def set_model(self, model: str) -> None:
        self._model_override = model

    def update_tool_result(self, tool_call_id: str, content: str) -> None:
        self._tool_result_updates[tool_call_id] = content

    def apply_tool_result_updates(self, updates: Mapping[str, str]) -> None:
        self._tool_result_updates.update(updates)

    def apply_toon_compression(self, model: str) -> ToolCompressionStats:
        messages = apply_tool_result_updates(self._messages(), self._tool_result_updates)
        compressed, stats = compress_tool_messages(messages, model)
        self._tool_result_updates.update(tool_content_changes(messages, compressed))
        return stats

    def to_provider_request(self) -> dict:
        return build_request(self._request, self.get_model(), self._tool_result_updates)


class OpenAIResponseAdapter:
    """Response adapter for a complete chat completion.

    Provider-specific finish reasons (Mistral "model_length", Z.ai
    "sensitive") are passed through unchanged.
    """

    def __init__(self, response: dict, provider: str = "openai"):
        self.provider = provider
        self._response = response

    def get_id(self) -> str:
        return self._response.get("id", "")

    def get_model(self) -> str:
        return self._response.get("model", "")

    def get_text(self) -> str:
        return response_text(self._response)

    def get_reasoning(self) -> str:
        return first_message(self._response).get("reasoning_content") or ""

    def get_tool_calls(self) -> list[ToolCall]:
        return response_tool_calls(self._response, self.provider)

    def has_tool_calls(self) -> bool:
        return bool(self.get_tool_calls())

    def get_usage(self) -> UsageView:
        return response_usage(self._response)

    def get_finish_reasons(self) -> list[str]:
        return finish_reasons(self._response)

    def get_original_response(self) -> dict:
        return self._response

    def to_refusal_response(self, refusal_message: str, content_message: str) -> dict:
        return refusal_response(self._response, content_message)


class OpenAIStreamAdapter:
    def __init__(self, provider: str = "openai"):
        self.provider = provider
        self._accumulator = ChatCompletionAccumulator(provider)
        self.state = self._accumulator.state

    def process_chunk(self, chunk: dict) -> ChunkProcessingResult:
        return self._accumulator.process_chunk(chunk)

    def get_sse_headers(self) -> dict[str, str]:
        return dict(SSE_HEADERS)

    def format_text_delta_sse(self, text: str) -> str:
        return self._accumulator.format_text_delta_sse(text)

    def format_complete_text_sse(self, text: str) -> list[str]:
        return self._accumulator.format_complete_text_sse(text)

    def format_end_sse(self, finish_reason: str | None = None) -> str:
        return self._accumulator.format_end_sse(finish_reason)

    def get_raw_tool_call_events(self) -> list[str]:
        return self._accumulator.get_raw_tool_call_events()

    def get_tool_calls(self) -> list[ToolCall]:
        return self._accumulator.get_tool_calls()

    def to_provider_response(self) -> dict:
        return self._accumulator.to_provider_response()


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class OpenAIProvider:
    """Provider for api.openai.com chat completions."""

    provider = "openai"
    interaction_type = "openai:chatCompletions"

    def __init__(self, settings: Settings | None = None):
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def create_request_adapter(self, request: dict) -> OpenAIRequestAdapter:
        return OpenAIRequestAdapter(request)

    def create_response_adapter(self, response: dict) -> OpenAIResponseAdapter:
        return OpenAIResponseAdapter(response)

    def create_stream_adapter(self) -> OpenAIStreamAdapter:
        return OpenAIStreamAdapter()

    def extract_api_key(self, headers: Mapping[str, str]) -> str | None:
        auth = authorization_header(headers)
        return strip_bearer(auth) if auth else None

    def get_base_url(self) -> str | None:
        return self.settings.openai_base_url

    def create_client(self, api_key: str | None, options: ClientOptions | None = None) -> Any:
        return build_openai_client(
            self.provider,
            api_key or self.settings.openai_api_key,
            self.get_base_url(),
            options or ClientOptions(),
            self.settings,
        )

    async def execute(self, client: Any, request: dict) -> dict:
        return await create_chat_completion(self.provider, client, request)

    def execute_stream(self, client: Any, request: dict) -> AsyncIterator[dict]:
        return stream_chat_completion(self.provider, client, request)

    def extract_error_message(self, error: Any) -> str:
        return default_error_message(error)
