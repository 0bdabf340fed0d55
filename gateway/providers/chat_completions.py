"""Helpers for the OpenAI chat-completions wire format.

Every upstream the gateway speaks to uses a variant of this format, so the
provider modules compose these functions instead of inheriting from a
common adapter.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from gateway.schemas.common import UsageView
from gateway.schemas.messages import (
    CanonicalMessage,
    ContentPart,
    ImagePart,
    RefusalPart,
    TextPart,
)
from gateway.schemas.tools import ToolCall, ToolDefinition, ToolResult
from gateway.utils.tool_content import (
    UNKNOWN_TOOL_NAME,
    content_to_text,
    decode_tool_call,
    parse_json_or_raw,
)

logger = structlog.get_logger()

_CANONICAL_ROLES = {"system", "user", "assistant", "tool", "developer", "function"}
_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Headers
# ---------------------------------------------------------------------------


def authorization_header(headers: Mapping[str, str]) -> str | None:
    """Return the Authorization header value, matching the name case-insensitively."""
    for name, value in headers.items():
        if name.lower() == "authorization" and isinstance(value, str) and value:
            return value
    return None


def strip_bearer(value: str) -> str:
    return _BEARER_PREFIX.sub("", value).strip()


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def tool_call_name(tool_call: Mapping[str, Any]) -> str | None:
    """Name of a wire tool call, for both function and custom variants."""
    if tool_call.get("type") == "custom" or "custom" in tool_call:
        return (tool_call.get("custom") or {}).get("name")
    return (tool_call.get("function") or {}).get("name")


def find_tool_name(messages: list[dict], tool_call_id: str | None) -> str | None:
    """Scan backward for the assistant message that issued ``tool_call_id``."""
    if not tool_call_id:
        return None
    for message in reversed(messages):
        if message.get("role") != "assistant":
            continue
        for tool_call in message.get("tool_calls") or []:
            if tool_call.get("id") == tool_call_id:
                return tool_call_name(tool_call)
    return None


def parse_tool_content(content: Any) -> Any:
    """Parse JSON-looking tool content; anything else is returned as-is."""
    if isinstance(content, str) and content.strip()[:1] in ("{", "["):
        return parse_json_or_raw(content)
    return content


def _content_parts(content: list, provider: str) -> list[ContentPart]:
    parts: list[ContentPart] = []
    for part in content:
        if isinstance(part, str):
            parts.append(TextPart(text=part))
            continue
        if not isinstance(part, dict):
            continue
        kind = part.get("type")
        if kind == "text":
            parts.append(TextPart(text=str(part.get("text", ""))))
        elif kind == "image_url":
            image = part.get("image_url")
            if isinstance(image, dict):
                parts.append(ImagePart(url=str(image.get("url", "")), detail=image.get("detail")))
            elif isinstance(image, str):
                parts.append(ImagePart(url=image))
        elif kind == "refusal":
            parts.append(RefusalPart(refusal=str(part.get("refusal", ""))))
        else:
            logger.debug("content_part_skipped", provider=provider, part_type=kind)
    return parts


def to_canonical_messages(messages: list[dict], provider: str) -> list[CanonicalMessage]:
    """Convert wire messages; tool messages get their correlated ``ToolResult``."""
    result: list[CanonicalMessage] = []
    for message in messages:
        role = message.get("role")
        if role not in _CANONICAL_ROLES:
            logger.warning("message_role_unsupported", provider=provider, role=role)
            continue

        raw_content = message.get("content")
        if isinstance(raw_content, list):
            content: str | list[ContentPart] | None = _content_parts(raw_content, provider)
        elif raw_content is None:
            content = None
        else:
            content = content_to_text(raw_content)

        tool_calls = None
        if role == "tool":
            tool_call_id = message.get("tool_call_id")
            name = find_tool_name(messages, tool_call_id)
            if name:
                tool_calls = [
                    ToolResult(
                        id=tool_call_id,
                        name=name,
                        content=parse_tool_content(raw_content),
                    )
                ]

        result.append(CanonicalMessage(role=role, content=content, tool_calls=tool_calls))
    return result


def collect_tool_results(messages: list[dict]) -> list[ToolResult]:
    results: list[ToolResult] = []
    for message in messages:
        if message.get("role") != "tool":
            continue
        tool_call_id = message.get("tool_call_id") or ""
        results.append(
            ToolResult(
                id=tool_call_id,
                name=find_tool_name(messages, tool_call_id) or UNKNOWN_TOOL_NAME,
                content=parse_tool_content(message.get("content")),
            )
        )
    return results


def collect_tool_definitions(tools: Iterable[dict] | None) -> list[ToolDefinition]:
    definitions: list[ToolDefinition] = []
    for tool in tools or []:
        if tool.get("type", "function") == "function" and "function" in tool:
            function = tool["function"]
            definitions.append(
                ToolDefinition(
                    name=function.get("name", ""),
                    description=function.get("description"),
                    input_schema=function.get("parameters") or {},
                )
            )
        elif tool.get("type") == "custom" and "custom" in tool:
            custom = tool["custom"]
            definitions.append(
                ToolDefinition(
                    name=custom.get("name", ""),
                    description=custom.get("description"),
                    input_schema=custom.get("format") or {},
                )
            )
    return definitions


def apply_tool_result_updates(messages: list[dict], updates: Mapping[str, str]) -> list[dict]:
    """Return messages with tool contents replaced; the input list is left intact."""
    if not updates:
        return list(messages)
    return [
        {**message, "content": updates[message["tool_call_id"]]}
        if message.get("role") == "tool" and message.get("tool_call_id") in updates
        else message
        for message in messages
    ]


def tool_content_changes(original: list[dict], compressed: list[dict]) -> dict[str, str]:
    """Map tool_call_id to new content for every tool message the compressor rewrote."""
    changes: dict[str, str] = {}
    for before, after in zip(original, compressed):
        if before.get("role") != "tool" or before is after:
            continue
        if after.get("content") != before.get("content") and before.get("tool_call_id"):
            changes[before["tool_call_id"]] = after["content"]
    return changes


def build_request(request: dict, model: str, updates: Mapping[str, str]) -> dict:
    """Merge the base request with a model override and tool result updates."""
    merged = copy.deepcopy(request)
    merged["model"] = model
    merged["messages"] = apply_tool_result_updates(merged.get("messages") or [], updates)
    return merged


def streaming_request(request: dict) -> dict:
    """The request body sent upstream when streaming, with usage reporting on."""
    stream_options = {**(request.get("stream_options") or {}), "include_usage": True}
    return {**request, "stream": True, "stream_options": stream_options}


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


def first_message(response: dict) -> dict:
    choices = response.get("choices") or []
    if not choices:
        return {}
    return choices[0].get("message") or {}


def response_text(response: dict) -> str:
    content = first_message(response).get("content")
    if content is None:
        return ""
    return content_to_text(content)


def response_tool_calls(response: dict, provider: str) -> list[ToolCall]:
    return [
        decode_tool_call(tool_call, provider)
        for tool_call in first_message(response).get("tool_calls") or []
    ]


def response_usage(response: dict) -> UsageView:
    return UsageView.from_openai_usage(response.get("usage"))


def finish_reasons(response: dict) -> list[str]:
    return [
        choice["finish_reason"]
        for choice in response.get("choices") or []
        if choice.get("finish_reason")
    ]


def refusal_response(response: dict, content_message: str) -> dict:
    """Copy of ``response`` whose first choice is a plain assistant reply."""
    refused = copy.deepcopy(response)
    choices = refused.get("choices") or [{"index": 0}]
    first = dict(choices[0])
    first["message"] = {"role": "assistant", "content": content_message}
    first["finish_reason"] = "stop"
    refused["choices"] = [first, *choices[1:]]
    return refused
