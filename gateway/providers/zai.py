"""Z.ai (GLM) provider.

Z.ai answers in the OpenAI format with two additions the shared adapters
already handle: ``reasoning_content`` on messages and deltas, and tool calls
that are either ``{"type": "function", "function": {...}}`` or
``{"type": "custom", "custom": {"name": ..., "input": ...}}``. Both variants
decode into the same ``ToolCall`` whether the response was streamed or not.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import Any

from gateway.config import Settings, get_settings
from gateway.errors import default_error_message
from gateway.providers.chat_completions import authorization_header, strip_bearer
from gateway.providers.openai import (
    OpenAIRequestAdapter,
    OpenAIResponseAdapter,
    OpenAIStreamAdapter,
    build_openai_client,
    create_chat_completion,
    stream_chat_completion,
)
from gateway.schemas.common import ClientOptions

PROVIDER = "zai"


class ZaiProvider:
    provider = PROVIDER
    interaction_type = "zai:chatCompletions"

    def __init__(self, settings: Settings | None = None):
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def create_request_adapter(self, request: dict) -> OpenAIRequestAdapter:
        # web_search and retrieval tools have no schema and are skipped by get_tools
        return OpenAIRequestAdapter(request, provider=PROVIDER)

    def create_response_adapter(self, response: dict) -> OpenAIResponseAdapter:
        return OpenAIResponseAdapter(response, provider=PROVIDER)

    def create_stream_adapter(self) -> OpenAIStreamAdapter:
        return OpenAIStreamAdapter(provider=PROVIDER)

    def extract_api_key(self, headers: Mapping[str, str]) -> str | None:
        auth = authorization_header(headers)
        return strip_bearer(auth) if auth else None

    def get_base_url(self) -> str | None:
        return self.settings.zai_base_url

    def create_client(self, api_key: str | None, options: ClientOptions | None = None) -> Any:
        return build_openai_client(
            self.provider,
            api_key or self.settings.zai_api_key,
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
