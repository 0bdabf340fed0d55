"""Tests for provider credentials handling and the OpenAI SDK transport."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APIConnectionError, AsyncOpenAI

from gateway.errors import MissingCredentialsError, ProviderAPIError, UnreadableResponseError
from gateway.providers.minimax import MinimaxClient, MinimaxProvider
from gateway.providers.mistral import MistralProvider
from gateway.providers.mock import MockChatCompletionsClient
from gateway.providers.openai import OpenAIProvider, openai_sdk_kwargs
from gateway.providers.openrouter import OpenRouterProvider
from gateway.providers.zai import ZaiProvider
from gateway.schemas.common import ClientOptions


# ---------------------------------------------------------------------------
# SDK kwargs
# ---------------------------------------------------------------------------


def test_unknown_fields_move_to_extra_body():
    kwargs = openai_sdk_kwargs(
        {"model": "glm-4.6", "messages": [], "temperature": 0.3, "thinking": {"type": "enabled"}}
    )

    assert kwargs["model"] == "glm-4.6"
    assert kwargs["temperature"] == 0.3
    assert kwargs["extra_body"] == {"thinking": {"type": "enabled"}}
    assert "thinking" not in kwargs


def test_known_fields_have_no_extra_body():
    kwargs = openai_sdk_kwargs({"model": "gpt-4o", "messages": [], "stream": True})
    assert "extra_body" not in kwargs


# ---------------------------------------------------------------------------
# API key extraction
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("provider_cls", [OpenAIProvider, MistralProvider, MinimaxProvider, ZaiProvider])
def test_extract_api_key_strips_bearer(provider_cls, settings):
    provider = provider_cls(settings)

    assert provider.extract_api_key({"Authorization": "Bearer sk-123"}) == "sk-123"
    assert provider.extract_api_key({"authorization": "sk-123"}) == "sk-123"
    assert provider.extract_api_key({}) is None


def test_openrouter_key_is_normalized_to_bearer(settings):
    provider = OpenRouterProvider(settings)

    assert provider.extract_api_key({"Authorization": "sk-or-1"}) == "Bearer sk-or-1"
    assert provider.extract_api_key({"Authorization": "Bearer sk-or-1"}) == "Bearer sk-or-1"
    assert provider.extract_api_key({}) is None


# ---------------------------------------------------------------------------
# Client construction
# ---------------------------------------------------------------------------


class TestCreateClient:
    def test_openai_client(self, settings):
        client = OpenAIProvider(settings).create_client("sk-request")

        assert isinstance(client, AsyncOpenAI)
        assert client.api_key == "sk-request"
        assert client.max_retries == 0
        assert str(client.base_url).startswith("https://api.openai.com/v1")

    def test_falls_back_to_configured_key(self, settings):
        client = ZaiProvider(settings).create_client(None)

        assert client.api_key == "zai-test"
        assert str(client.base_url).startswith("https://api.z.ai/api/paas/v4")

    def test_missing_key_raises(self, settings):
        settings = settings.model_copy(update={"mistral_api_key": ""})

        with pytest.raises(MissingCredentialsError, match="mistral"):
            MistralProvider(settings).create_client(None)

    def test_base_url_override(self, settings):
        client = MistralProvider(settings).create_client(
            "k", ClientOptions(base_url="http://localhost:9999/v1")
        )
        assert str(client.base_url).startswith("http://localhost:9999/v1")

    def test_mock_mode(self, settings):
        settings = settings.model_copy(update={"openai_api_key": ""})

        client = OpenAIProvider(settings).create_client(None, ClientOptions(mock_mode=True))

        assert isinstance(client, MockChatCompletionsClient)

    def test_openrouter_attribution_headers(self, settings):
        client = OpenRouterProvider(settings).create_client("Bearer sk-or-1")

        assert client.api_key == "sk-or-1"
        assert client.default_headers["HTTP-Referer"] == "https://gateway.example.com"
        assert client.default_headers["X-Title"] == "Gateway Tests"

    def test_openrouter_caller_headers_win(self, settings):
        client = OpenRouterProvider(settings).create_client(
            "sk-or-1", ClientOptions(default_headers={"X-Title": "Caller"})
        )
        assert client.default_headers["X-Title"] == "Caller"

    def test_openrouter_requires_key(self, settings):
        settings = settings.model_copy(update={"openrouter_api_key": ""})

        with pytest.raises(MissingCredentialsError, match="OpenRouter"):
            OpenRouterProvider(settings).create_client(None)

    def test_minimax_client(self, settings):
        client = MinimaxProvider(settings).create_client(
            "Bearer mm-1", ClientOptions(timeout=5.0, default_headers={"X-Trace": "1"})
        )

        assert isinstance(client, MinimaxClient)
        assert client.api_key == "mm-1"
        assert client.base_url == "https://api.minimax.io/v1"
        assert client.timeout == 5.0
        assert client.default_headers == {"X-Trace": "1"}

    def test_minimax_requires_key(self, settings):
        settings = settings.model_copy(update={"minimax_api_key": ""})

        with pytest.raises(MissingCredentialsError, match="MiniMax"):
            MinimaxProvider(settings).create_client(None)


# ---------------------------------------------------------------------------
# Execution through the SDK transport
# ---------------------------------------------------------------------------


class TestExecute:
    @pytest.mark.asyncio
    async def test_execute_sends_non_streaming_request(self, settings):
        client = MockChatCompletionsClient(text="pong")

        response = await OpenAIProvider(settings).execute(
            client, {"model": "gpt-4o", "messages": [], "stream": True, "seed": 1}
        )

        assert response["choices"][0]["message"]["content"] == "pong"
        assert client.requests[0]["stream"] is False

    @pytest.mark.asyncio
    async def test_execute_stream_requests_usage_and_closes(self, settings):
        client = MockChatCompletionsClient(tool_calls=[("read_file", {"file_path": "/a"})])

        chunks = [
            c async for c in ZaiProvider(settings).execute_stream(client, {"model": "glm-4.6", "messages": []})
        ]

        sent = client.requests[0]
        assert sent["stream"] is True
        assert sent["stream_options"] == {"include_usage": True}
        assert chunks[-1]["usage"]["total_tokens"] == 15
        assert chunks[1]["choices"][0]["delta"]["tool_calls"][0]["function"]["name"] == "read_file"

    @pytest.mark.asyncio
    async def test_unknown_fields_reach_the_sdk_as_extra_body(self, settings):
        client = MockChatCompletionsClient()

        await ZaiProvider(settings).execute(
            client, {"model": "glm-4.6", "messages": [], "thinking": {"type": "enabled"}}
        )

        assert client.requests[0]["extra_body"] == {"thinking": {"type": "enabled"}}

    @pytest.mark.asyncio
    async def test_connection_error_is_unreadable_response(self, settings):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            side_effect=APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1"))
        )

        with pytest.raises(UnreadableResponseError):
            await OpenAIProvider(settings).execute(client, {"model": "gpt-4o", "messages": []})

    @pytest.mark.asyncio
    async def test_sdk_models_are_dumped_to_dicts(self, settings):
        sdk_response = MagicMock()
        sdk_response.model_dump.return_value = {"id": "chatcmpl-1", "choices": []}
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=sdk_response)

        response = await MistralProvider(settings).execute(client, {"model": "m", "messages": []})

        assert response == {"id": "chatcmpl-1", "choices": []}
        sdk_response.model_dump.assert_called_once_with(exclude_unset=True)


# ---------------------------------------------------------------------------
# Error messages
# ---------------------------------------------------------------------------


class TestExtractErrorMessage:
    def test_structured_message(self, settings):
        error = ProviderAPIError("HTTP 400", status_code=400, body={"error": {"message": "bad model"}})
        assert OpenAIProvider(settings).extract_error_message(error) == "bad model"

    def test_exception_text(self, settings):
        assert OpenAIProvider(settings).extract_error_message(RuntimeError("boom")) == "boom"

    def test_mistral_top_level_message(self, settings):
        error = ProviderAPIError("HTTP 422", status_code=422, body={"object": "error", "message": "invalid tool"})
        assert MistralProvider(settings).extract_error_message(error) == "invalid tool"

    def test_mistral_falls_back(self, settings):
        assert MistralProvider(settings).extract_error_message(RuntimeError("boom")) == "boom"
