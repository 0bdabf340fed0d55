"""Mistral La Plateforme provider (OpenAI-compatible wire, AsyncOpenAI transport).

The wire format matches OpenAI's, so the adapters are the OpenAI ones
running under the ``mistral`` provider id. Only error extraction differs.
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

PROVIDER = "mistral"


class MistralProvider:
    provider = PROVIDER
    interaction_type = "mistral:chatCompletions"

    def __init__(self, settings: Settings | None = None):
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def create_request_adapter(self, request: dict) -> OpenAIRequestAdapter:
        return OpenAIRequestAdapter(request, provider=PROVIDER)

    def create_response_adapter(self, response: dict) -> OpenAIResponseAdapter:
        return OpenAIResponseAdapter(response, provider=PROVIDER)

    def create_stream_adapter(self) -> OpenAIStreamAdapter:
        return OpenAIStreamAdapter(provider=PROVIDER)

    def extract_api_key(self, headers: Mapping[str, str]) -> str | None:
        auth = authorization_header(headers)
        return strip_bearer(auth) if auth else None

    def get_base_url(self) -> str | None:
        return self.settings.mistral_base_url

    def create_client(self, api_key: str | None, options: ClientOptions | None = None) -> Any:
        return build_openai_client(
            self.provider,
            api_key or self.settings.mistral_api_key,
            self.get_base_url(),
            options or ClientOptions(),
            self.settings,
        )

    async def execute(self, client: Any, request: dict) -> dict:
        return await create_chat_completion(self.provider, client, request)

    def execute_stream(self, client: Any, request: dict) -> AsyncIterator[dict]:
        return stream_chat_completion(self.provider, client, request)

    def extract_error_message(self, error: Any) -> str:
        """Mistral puts ``message`` at the top level of its error body."""
        body = getattr(error, "body", None)
        if isinstance(body, dict) and isinstance(body.get("message"), str) and body["message"]:
            return body["message"]
        return default_error_message(error)
