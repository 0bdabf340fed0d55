"""OpenRouter provider.

OpenRouter speaks the OpenAI chat-completions format, so its adapters wrap
the OpenAI ones and only differ in provider naming, credentials handling
and attribution headers.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import Any

from gateway.config import Settings, get_settings
from gateway.errors import MissingCredentialsError, default_error_message
from gateway.providers.chat_completions import authorization_header, strip_bearer
from gateway.providers.openai import (
    OpenAIRequestAdapter,
    OpenAIResponseAdapter,
    OpenAIStreamAdapter,
    build_openai_client,
    create_chat_completion,
    stream_chat_completion,
)
from gateway.schemas.common import ClientOptions, ToolCompressionStats, UsageView
from gateway.schemas.messages import CanonicalMessage
from gateway.schemas.tools import ToolCall, ToolDefinition, ToolResult
from gateway.streaming.accumulator import ChunkProcessingResult

PROVIDER = "openrouter"


class OpenRouterRequestAdapter:
    def __init__(self, request: dict):
        self.provider = PROVIDER
        self._delegate = OpenAIRequestAdapter(request, provider=PROVIDER)

    def get_model(self) -> str:
        return self._delegate.get_model()

    def is_streaming(self) -> bool:
        return self._delegate.is_streaming()

    def get_messages(self) -> list[CanonicalMessage]:
        return self._delegate.get_messages()

    def get_tool_results(self) -> list[ToolResult]:
        return self._delegate.get_tool_results()

    def get_tools(self) -> list[ToolDefinition]:
        return self._delegate.get_tools()

    def has_tools(self) -> bool:
        return self._delegate.has_tools()

    def get_provider_messages(self) -> list[dict]:
        return self._delegate.get_provider_messages()

    def get_original_request(self) -> dict:
        return self._delegate.get_original_request()

    def set_model(self, model: str) -> None:
        self._delegate.set_model(model)

    def update_tool_result(self, tool_call_id: str, content: str) -> None:
        self._delegate.update_tool_result(tool_call_id, content)

    def apply_tool_result_updates(self, updates: Mapping[str, str]) -> None:
        self._delegate.apply_tool_result_updates(updates)

    def apply_toon_compression(self, model: str) -> ToolCompressionStats:
        return self._delegate.apply_toon_compression(model)

    def to_provider_request(self) -> dict:
        return self._delegate.to_provider_request()


class OpenRouterResponseAdapter:
    def __init__(self, response: dict):
        self.provider = PROVIDER
        self._delegate = OpenAIResponseAdapter(response, provider=PROVIDER)

    def get_id(self) -> str:
        return self._delegate.get_id()

    def get_model(self) -> str:
        return self._delegate.get_model()

    def get_text(self) -> str:
        return self._delegate.get_text()

    def get_tool_calls(self) -> list[ToolCall]:
        return self._delegate.get_tool_calls()

    def has_tool_calls(self) -> bool:
        return self._delegate.has_tool_calls()

    def get_usage(self) -> UsageView:
        return self._delegate.get_usage()

    def get_finish_reasons(self) -> list[str]:
        return self._delegate.get_finish_reasons()

    def get_original_response(self) -> dict:
        return self._delegate.get_original_response()

    def to_refusal_response(self, refusal_message: str, content_message: str) -> dict:
        return self._delegate.to_refusal_response(refusal_message, content_message)


class OpenRouterStreamAdapter:
    def __init__(self):
        self.provider = PROVIDER
        self._delegate = OpenAIStreamAdapter(provider=PROVIDER)
        self.state = self._delegate.state

    def process_chunk(self, chunk: dict) -> ChunkProcessingResult:
        return self._delegate.process_chunk(chunk)

    def get_sse_headers(self) -> dict[str, str]:
        return self._delegate.get_sse_headers()

    def format_text_delta_sse(self, text: str) -> str:
        return self._delegate.format_text_delta_sse(text)

    def format_complete_text_sse(self, text: str) -> list[str]:
        return self._delegate.format_complete_text_sse(text)

    def format_end_sse(self, finish_reason: str | None = None) -> str:
        return self._delegate.format_end_sse(finish_reason)

    def get_raw_tool_call_events(self) -> list[str]:
        return self._delegate.get_raw_tool_call_events()

    def get_tool_calls(self) -> list[ToolCall]:
        return self._delegate.get_tool_calls()

    def to_provider_response(self) -> dict:
        return self._delegate.to_provider_response()


class OpenRouterProvider:
    provider = PROVIDER
    interaction_type = "openrouter:chatCompletions"

    def __init__(self, settings: Settings | None = None):
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def create_request_adapter(self, request: dict) -> OpenRouterRequestAdapter:
        return OpenRouterRequestAdapter(request)

    def create_response_adapter(self, response: dict) -> OpenRouterResponseAdapter:
        return OpenRouterResponseAdapter(response)

    def create_stream_adapter(self) -> OpenRouterStreamAdapter:
        return OpenRouterStreamAdapter()

    def extract_api_key(self, headers: Mapping[str, str]) -> str | None:
        """Return the Authorization value, always in ``Bearer <key>`` form.

        Upstream header handling may already have stripped the scheme.
        """
        auth = authorization_header(headers)
        if auth is None:
            return None
        return auth if auth.lower().startswith("bearer ") else f"Bearer {auth}"

    def get_base_url(self) -> str | None:
        return self.settings.openrouter_base_url

    def attribution_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.settings.openrouter_referer:
            headers["HTTP-Referer"] = self.settings.openrouter_referer
        if self.settings.openrouter_title:
            headers["X-Title"] = self.settings.openrouter_title
        return headers

    def create_client(self, api_key: str | None, options: ClientOptions | None = None) -> Any:
        options = options or ClientOptions()
        api_key = api_key or self.settings.openrouter_api_key
        if not options.mock_mode and not api_key:
            raise MissingCredentialsError("OpenRouter")

        # The SDK adds the Bearer scheme itself
        raw_key = strip_bearer(api_key) if api_key else None
        options = options.model_copy(
            update={"default_headers": {**self.attribution_headers(), **options.default_headers}}
        )
        return build_openai_client(self.provider, raw_key, self.get_base_url(), options, self.settings)

    async def execute(self, client: Any, request: dict) -> dict:
        return await create_chat_completion(self.provider, client, request)

    def execute_stream(self, client: Any, request: dict) -> AsyncIterator[dict]:
        return stream_chat_completion(self.provider, client, request)

    def extract_error_message(self, error: Any) -> str:
        return default_error_message(error)
