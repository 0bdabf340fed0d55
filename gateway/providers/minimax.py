"""MiniMax provider.

MiniMax is OpenAI-shaped on the wire, so it reuses the OpenAI adapters, but
its transport is a small httpx client of its own: MiniMax reports some
failures as HTTP 200 with a non-zero ``base_resp.status_code``, which the
OpenAI SDK would treat as success.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx
import structlog

from gateway.config import Settings, get_settings
from gateway.errors import (
    MissingCredentialsError,
    ProviderAPIError,
    UnreadableResponseError,
    default_error_message,
)
from gateway.providers.chat_completions import authorization_header, strip_bearer
from gateway.providers.openai import OpenAIRequestAdapter, OpenAIResponseAdapter, OpenAIStreamAdapter
from gateway.schemas.common import ClientOptions
from gateway.streaming.sse import SSEDecoder

logger = structlog.get_logger()

PROVIDER = "minimax"


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


def _api_error(response: httpx.Response, text: str) -> ProviderAPIError:
    message = f"MiniMax API error: {response.status_code} {response.reason_phrase}"
    try:
        body: Any = json.loads(text)
    except ValueError:
        body = None
    detail = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        detail = body["error"].get("message")
    return ProviderAPIError(
        f"{message} - {detail or text}",
        status_code=response.status_code,
        body=body,
    )


def _check_base_resp(body: dict) -> None:
    """Raise for MiniMax's in-band errors (HTTP 200, non-zero base_resp)."""
    base_resp = body.get("base_resp") or {}
    code = base_resp.get("status_code") or 0
    if code != 0:
        status_msg = base_resp.get("status_msg") or "unknown error"
        raise ProviderAPIError(
            f"MiniMax API error: {code} - {status_msg}",
            status_code=code,
            body={"error": {"message": status_msg, "code": code}},
        )


class MinimaxClient:
    """Async client for MiniMax ``/chat/completions``."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str,
        *,
        timeout: float = 120.0,
        default_headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_headers = dict(default_headers or {})
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **self.default_headers}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def chat_completions(self, request: dict) -> dict:
        url = f"{self.base_url}/chat/completions"
        try:
            async with self._client() as client:
                resp = await client.post(
                    url, headers=self._headers(), json={**request, "stream": False}
                )
        except httpx.TransportError as e:
            logger.error("upstream_unreachable", provider=PROVIDER, error=str(e))
            raise UnreadableResponseError(f"Could not read response from MiniMax: {e}") from e

        if resp.is_error:
            raise _api_error(resp, resp.text)

        try:
            body = resp.json()
        except ValueError as e:
            raise UnreadableResponseError("MiniMax response body is not JSON") from e
        _check_base_resp(body)
        return body

    async def chat_completions_stream(self, request: dict) -> AsyncIterator[dict]:
        """Yield decoded stream chunks; the connection is released on exit."""
        url = f"{self.base_url}/chat/completions"
        decoder = SSEDecoder(PROVIDER)
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", url, headers=self._headers(), json={**request, "stream": True}
                ) as resp:
                    if resp.is_error:
                        text = (await resp.aread()).decode("utf-8", errors="replace")
                        raise _api_error(resp, text)

                    async for data in resp.aiter_bytes():
                        for chunk in decoder.feed(data):
                            _check_base_resp(chunk)
                            yield chunk
                        if decoder.done:
                            return
                    for chunk in decoder.flush():
                        _check_base_resp(chunk)
                        yield chunk
        except httpx.TransportError as e:
            logger.error("upstream_unreachable", provider=PROVIDER, error=str(e))
            raise UnreadableResponseError(f"Could not read stream from MiniMax: {e}") from e


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class MinimaxProvider:
    provider = PROVIDER
    interaction_type = "minimax:chatCompletions"

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
        return self.settings.minimax_base_url

    def create_client(
        self, api_key: str | None, options: ClientOptions | None = None
    ) -> MinimaxClient:
        options = options or ClientOptions()
        api_key = api_key or self.settings.minimax_api_key
        if not api_key:
            raise MissingCredentialsError("MiniMax")
        return MinimaxClient(
            strip_bearer(api_key),
            options.base_url or self.get_base_url(),
            timeout=options.timeout or self.settings.upstream_timeout_seconds,
            default_headers=options.default_headers,
        )

    async def execute(self, client: MinimaxClient, request: dict) -> dict:
        return await client.chat_completions(request)

    def execute_stream(self, client: MinimaxClient, request: dict) -> AsyncIterator[dict]:
        return client.chat_completions_stream(request)

    def extract_error_message(self, error: Any) -> str:
        return default_error_message(error)
