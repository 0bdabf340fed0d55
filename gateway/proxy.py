"""Per-request control flow of the gateway.

``LLMProxy.handle`` takes a client's chat-completions body for one provider
and returns either the final response dict or an async iterator of SSE
frames. Tool calls proposed by the model are checked against the agent's
policies; a blocked call turns into an ordinary assistant reply.
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncGenerator, AsyncIterator, Mapping
from typing import Any

import structlog

from gateway.config import Settings, get_settings
from gateway.errors import MissingCredentialsError, ProviderAPIError, UnreadableResponseError
from gateway.policies.models import InMemoryPolicyStore, PolicyStore
from gateway.policies.tool_invocation import evaluate_policies
from gateway.policies.trusted_data import evaluate_trusted_data
from gateway.providers.base import LLMProvider, StreamAdapter
from gateway.registry import get_provider
from gateway.schemas.common import ClientOptions
from gateway.schemas.tools import ToolCall, ToolInvocationRequest
from gateway.streaming.sse import format_sse

logger = structlog.get_logger()

# Failures that are already client-safe and must reach the caller unchanged
_FATAL_ERRORS = (MissingCredentialsError, UnreadableResponseError)


class SSERelay:
    """Async iterator over a relay's SSE frames.

    ``aclose`` releases the upstream stream even when the frames were never
    iterated; an unstarted generator would skip its own ``finally``.
    """

    def __init__(self, frames: AsyncGenerator[str, None], upstream: AsyncIterator[dict]):
        self._frames = frames
        self._upstream = upstream

    def __aiter__(self) -> SSERelay:
        return self

    async def __anext__(self) -> str:
        return await self._frames.__anext__()

    async def aclose(self) -> None:
        try:
            await self._frames.aclose()
        finally:
            await self._upstream.aclose()


class LLMProxy:
    """Runs one chat-completions request through a provider."""

    def __init__(
        self,
        store: PolicyStore | None = None,
        settings: Settings | None = None,
        providers: dict[str, LLMProvider] | None = None,
        client_options: ClientOptions | None = None,
    ):
        self.store = store or InMemoryPolicyStore()
        self.settings = settings or get_settings()
        self.providers = providers
        self.client_options = client_options or ClientOptions()

    async def handle(
        self,
        provider_id: str,
        body: dict,
        headers: Mapping[str, str],
        *,
        agent_id: str | None = None,
    ) -> dict | SSERelay:
        provider = get_provider(provider_id, self.providers)
        adapter = provider.create_request_adapter(body)
        log = logger.bind(provider=provider.provider, model=adapter.get_model(), agent_id=agent_id)

        untrusted = False
        if agent_id is not None:
            untrusted = evaluate_trusted_data(adapter.get_messages(), agent_id, store=self.store)

        if self.settings.toon_compression_enabled and adapter.get_tool_results():
            stats = adapter.apply_toon_compression(adapter.get_model())
            log.debug(
                "toon_compression_applied",
                compressed_count=stats.compressed_count,
                tokens_saved=stats.tokens_saved,
            )

        api_key = provider.extract_api_key(headers)
        client = provider.create_client(api_key, self.client_options)
        request = adapter.to_provider_request()

        if adapter.is_streaming():
            return await self._open_stream(provider, client, request, agent_id, untrusted)
        return await self._complete(provider, client, request, agent_id, untrusted)

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def _complete(
        self,
        provider: LLMProvider,
        client: Any,
        request: dict,
        agent_id: str | None,
        untrusted: bool,
    ) -> dict:
        try:
            raw = await provider.execute(client, request)
        except _FATAL_ERRORS:
            raise
        except Exception as e:
            raise self._upstream_error(provider, e) from e

        response = provider.create_response_adapter(raw)
        refusal = self._check_tool_calls(response.get_tool_calls(), agent_id, untrusted)
        usage = response.get_usage()
        logger.info(
            "completion_finished",
            provider=provider.provider,
            model=response.get_model(),
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            finish_reasons=response.get_finish_reasons(),
            blocked=refusal is not None,
        )
        if refusal is None:
            return response.get_original_response()
        refusal_message, content_message = refusal
        return response.to_refusal_response(refusal_message, content_message)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _open_stream(
        self,
        provider: LLMProvider,
        client: Any,
        request: dict,
        agent_id: str | None,
        untrusted: bool,
    ) -> SSERelay:
        """Start the upstream stream so connection errors surface before any frame."""
        upstream = provider.execute_stream(client, request)
        try:
            first = await anext(upstream)
        except StopAsyncIteration:
            first = None
        except _FATAL_ERRORS:
            raise
        except Exception as e:
            raise self._upstream_error(provider, e) from e
        frames = self._relay(provider, upstream, first, agent_id, untrusted)
        return SSERelay(frames, upstream)

    async def _relay(
        self,
        provider: LLMProvider,
        upstream: AsyncIterator[dict],
        first: dict | None,
        agent_id: str | None,
        untrusted: bool,
    ) -> AsyncGenerator[str, None]:
        """Forward text frames as they arrive; hold tool-call frames until the end.

        The whole upstream is drained because usage can arrive after the
        finish reason. Closing this generator closes the upstream stream.
        """
        stream = provider.create_stream_adapter()
        try:
            if first is not None:
                frame = self._ingest(stream, first)
                if frame:
                    yield frame
            async for chunk in upstream:
                frame = self._ingest(stream, chunk)
                if frame:
                    yield frame
        except Exception as e:
            message = provider.extract_error_message(e)
            logger.error("upstream_stream_failed", provider=provider.provider, error=message)
            yield format_sse({"error": {"message": message}})
            return
        finally:
            await upstream.aclose()

        refusal = self._check_tool_calls(stream.get_tool_calls(), agent_id, untrusted)
        if refusal is None:
            for frame in stream.get_raw_tool_call_events():
                yield frame
            yield stream.format_end_sse()
        else:
            _, content_message = refusal
            for frame in stream.format_complete_text_sse(content_message):
                yield frame
            yield stream.format_end_sse("stop")

        state = stream.state
        usage = state.usage
        first_chunk_ms = None
        if state.timing.first_chunk_time is not None:
            first_chunk_ms = round((state.timing.first_chunk_time - state.timing.start_time) * 1000)
        logger.info(
            "stream_finished",
            provider=provider.provider,
            model=state.model,
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
            finish_reason=state.stop_reason,
            tool_calls=len(state.tool_calls),
            blocked=refusal is not None,
            first_chunk_ms=first_chunk_ms,
            duration_ms=round((time.time() - state.timing.start_time) * 1000),
        )

    @staticmethod
    def _ingest(stream: StreamAdapter, chunk: dict) -> str | None:
        result = stream.process_chunk(chunk)
        if result.is_tool_call_chunk:
            return None
        return result.sse_data

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_tool_calls(
        self, tool_calls: list[ToolCall], agent_id: str | None, untrusted: bool
    ) -> tuple[str, str] | None:
        if agent_id is None or not tool_calls:
            return None
        requests = [
            ToolInvocationRequest(
                tool_call_name=call.name,
                tool_call_args=json.dumps(call.arguments, ensure_ascii=False),
            )
            for call in tool_calls
        ]
        return evaluate_policies(requests, agent_id, untrusted, store=self.store)

    @staticmethod
    def _upstream_error(provider: LLMProvider, error: Exception) -> ProviderAPIError:
        message = provider.extract_error_message(error)
        status_code = getattr(error, "status_code", None)
        logger.error(
            "upstream_request_failed",
            provider=provider.provider,
            status_code=status_code,
            error=message,
        )
        return ProviderAPIError(
            message,
            status_code=status_code if isinstance(status_code, int) else None,
            body=getattr(error, "body", None),
        )
