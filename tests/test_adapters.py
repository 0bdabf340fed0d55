"""Behaviour shared by every provider's request, response and stream adapters."""

from __future__ import annotations

import copy
import json

import pytest
import toon_format

from gateway.providers.openai import OpenAIRequestAdapter, OpenAIResponseAdapter, OpenAIStreamAdapter
from gateway.registry import build_providers
from gateway.streaming.sse import SSE_HEADERS
from tests.factories import function_tool_call, make_chunk, make_response, tool_call_delta

PROVIDER_IDS = ["openai", "openrouter", "mistral", "minimax", "zai"]

ROWS = [{"path": f"/srv/file_{i}.txt", "size": i * 10, "owner": "root"} for i in range(8)]


@pytest.fixture
def providers(settings):
    return build_providers(settings)


def _request(stream: bool = False) -> dict:
    return {
        "model": "gpt-4o",
        "stream": stream,
        "temperature": 0.1,
        "messages": [
            {"role": "user", "content": "list files"},
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [function_tool_call("call_1", "list_files", "{}")],
            },
            {"role": "tool", "tool_call_id": "call_1", "content": json.dumps(ROWS)},
        ],
        "tools": [
            {
                "type": "function",
                "function": {"name": "list_files", "parameters": {"type": "object"}},
            }
        ],
    }


# ---------------------------------------------------------------------------
# Request adapters
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("provider_id", PROVIDER_IDS)
class TestRequestAdapter:
    def test_reads(self, providers, provider_id):
        adapter = providers[provider_id].create_request_adapter(_request())

        assert adapter.provider == provider_id
        assert adapter.get_model() == "gpt-4o"
        assert adapter.is_streaming() is False
        assert adapter.has_tools()
        assert [t.name for t in adapter.get_tools()] == ["list_files"]
        assert [m.role for m in adapter.get_messages()] == ["user", "assistant", "tool"]
        [result] = adapter.get_tool_results()
        assert result.name == "list_files"
        assert result.content == ROWS

    def test_stream_flag(self, providers, provider_id):
        adapter = providers[provider_id].create_request_adapter(_request(stream=True))
        assert adapter.is_streaming() is True

    def test_to_provider_request_without_changes_equals_original(self, providers, provider_id):
        original = _request()
        adapter = providers[provider_id].create_request_adapter(original)

        assert adapter.to_provider_request() == original

    def test_set_model_is_buffered(self, providers, provider_id):
        original = _request()
        adapter = providers[provider_id].create_request_adapter(original)

        adapter.set_model("gpt-4o-mini")

        assert adapter.get_model() == "gpt-4o-mini"
        assert original["model"] == "gpt-4o"
        assert adapter.get_original_request()["model"] == "gpt-4o"
        assert adapter.to_provider_request()["model"] == "gpt-4o-mini"

    def test_tool_result_updates(self, providers, provider_id):
        original = _request()
        snapshot = copy.deepcopy(original)
        adapter = providers[provider_id].create_request_adapter(original)

        adapter.update_tool_result("call_1", "first")
        adapter.apply_tool_result_updates({"call_1": "second", "call_404": "ignored"})
        request = adapter.to_provider_request()

        assert request["messages"][2]["content"] == "second"
        assert len(request["messages"]) == 3
        assert original == snapshot

    def test_to_provider_request_is_idempotent(self, providers, provider_id):
        adapter = providers[provider_id].create_request_adapter(_request())
        adapter.set_model("other")
        adapter.update_tool_result("call_1", "replaced")

        assert adapter.to_provider_request() == adapter.to_provider_request()

    def test_toon_compression_is_buffered(self, providers, provider_id):
        original = _request()
        snapshot = copy.deepcopy(original)
        adapter = providers[provider_id].create_request_adapter(original)

        stats = adapter.apply_toon_compression("gpt-4o")
        request = adapter.to_provider_request()

        assert stats.compressed_count == 1
        assert original == snapshot
        assert adapter.get_provider_messages()[2]["content"] == json.dumps(ROWS)
        assert toon_format.decode(request["messages"][2]["content"]) == ROWS

    def test_toon_compression_sees_pending_updates(self, providers, provider_id):
        adapter = providers[provider_id].create_request_adapter(_request())
        adapter.update_tool_result("call_1", "plain text now")

        stats = adapter.apply_toon_compression("gpt-4o")

        assert stats.compressed_count == 0
        assert adapter.to_provider_request()["messages"][2]["content"] == "plain text now"


# ---------------------------------------------------------------------------
# Response adapters
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("provider_id", PROVIDER_IDS)
class TestResponseAdapter:
    def test_text_response(self, providers, provider_id):
        response = make_response(
            "Hello!", usage={"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}
        )
        adapter = providers[provider_id].create_response_adapter(response)

        assert adapter.get_id() == "chatcmpl-abc"
        assert adapter.get_model() == "gpt-4o"
        assert adapter.get_text() == "Hello!"
        assert adapter.has_tool_calls() is False
        assert adapter.get_finish_reasons() == ["stop"]
        assert adapter.get_usage().input_tokens == 5
        assert adapter.get_usage().output_tokens == 2
        assert adapter.get_original_response() is response

    def test_missing_usage_is_zero(self, providers, provider_id):
        adapter = providers[provider_id].create_response_adapter(make_response())

        usage = adapter.get_usage()

        assert (usage.input_tokens, usage.output_tokens) == (0, 0)

    def test_tool_calls(self, providers, provider_id):
        response = make_response(
            None,
            tool_calls=[
                function_tool_call("call_1", "read_file", '{"file_path": "/tmp/x"}'),
                function_tool_call("call_2", "broken", "not json"),
            ],
            finish_reason="tool_calls",
        )
        adapter = providers[provider_id].create_response_adapter(response)

        calls = adapter.get_tool_calls()

        assert adapter.has_tool_calls()
        assert adapter.get_text() == ""
        assert [c.name for c in calls] == ["read_file", "broken"]
        assert calls[0].arguments == {"file_path": "/tmp/x"}
        assert calls[1].arguments == {}

    def test_refusal_response(self, providers, provider_id):
        response = make_response(
            None,
            tool_calls=[function_tool_call("call_1", "read_file", "{}")],
            finish_reason="tool_calls",
        )
        adapter = providers[provider_id].create_response_adapter(response)

        refused = adapter.to_refusal_response("<gateway-tool-name>read_file</gateway-tool-name>", "denied")
        choice = refused["choices"][0]

        assert choice["message"] == {"role": "assistant", "content": "denied"}
        assert "tool_calls" not in choice["message"]
        assert choice["finish_reason"] == "stop"
        assert refused["id"] == response["id"]
        assert response["choices"][0]["finish_reason"] == "tool_calls"

    def test_provider_specific_finish_reasons_pass_through(self, providers, provider_id):
        adapter = providers[provider_id].create_response_adapter(make_response(finish_reason="model_length"))
        assert adapter.get_finish_reasons() == ["model_length"]


def test_zai_custom_tool_calls_and_reasoning(providers):
    response = make_response(
        None,
        tool_calls=[
            {"id": "c1", "type": "custom", "custom": {"name": "shell", "input": '{"cmd": "ls"}'}},
            {"id": "c2", "type": "custom", "custom": {"name": "patch", "input": "*** Begin"}},
        ],
        finish_reason="tool_calls",
        model="glm-4.6",
    )
    response["choices"][0]["message"]["reasoning_content"] = "Need to look around."
    adapter = providers["zai"].create_response_adapter(response)

    calls = adapter.get_tool_calls()

    assert [(c.name, c.arguments) for c in calls] == [
        ("shell", {"cmd": "ls"}),
        ("patch", {"input": "*** Begin"}),
    ]
    assert adapter.get_reasoning() == "Need to look around."


# ---------------------------------------------------------------------------
# Stream adapters
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("provider_id", PROVIDER_IDS)
class TestStreamAdapter:
    def test_text_and_tool_stream(self, providers, provider_id):
        adapter = providers[provider_id].create_stream_adapter()

        adapter.process_chunk(make_chunk({"role": "assistant", "content": "Checking"}))
        adapter.process_chunk(make_chunk(tool_call_delta(0, call_id="call_1", name="read_file")))
        adapter.process_chunk(make_chunk(tool_call_delta(0, arguments='{"file_path": "/a"}')))
        result = adapter.process_chunk(make_chunk({}, "tool_calls"))

        assert result.is_final
        assert adapter.state.text == "Checking"
        assert adapter.state.stop_reason == "tool_calls"
        [call] = adapter.get_tool_calls()
        assert (call.name, call.arguments) == ("read_file", {"file_path": "/a"})
        assert len(adapter.get_raw_tool_call_events()) == 2

        response = adapter.to_provider_response()
        assert response["choices"][0]["message"]["content"] == "Checking"
        assert response["choices"][0]["finish_reason"] == "tool_calls"

    def test_adapters_do_not_share_state(self, providers, provider_id):
        first = providers[provider_id].create_stream_adapter()
        second = providers[provider_id].create_stream_adapter()

        first.process_chunk(make_chunk({"content": "one"}))

        assert second.state.text == ""

    def test_sse_headers(self, providers, provider_id):
        headers = providers[provider_id].create_stream_adapter().get_sse_headers()

        assert headers == SSE_HEADERS
        headers["Content-Type"] = "changed"
        assert SSE_HEADERS["Content-Type"] == "text/event-stream"


@pytest.mark.parametrize("provider_id", ["mistral", "minimax", "zai"])
def test_openai_wire_providers_share_the_openai_adapters(providers, provider_id):
    provider = providers[provider_id]

    request_adapter = provider.create_request_adapter(_request())
    response_adapter = provider.create_response_adapter(make_response("hi"))
    stream_adapter = provider.create_stream_adapter()

    assert isinstance(request_adapter, OpenAIRequestAdapter)
    assert isinstance(response_adapter, OpenAIResponseAdapter)
    assert isinstance(stream_adapter, OpenAIStreamAdapter)
    assert {request_adapter.provider, response_adapter.provider, stream_adapter.provider} == {provider_id}
