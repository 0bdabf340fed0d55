"""Helpers for tool call arguments and tool message content on the wire."""

from __future__ import annotations

import json
from typing import Any

import structlog

from gateway.schemas.tools import ToolCall

logger = structlog.get_logger()

UNKNOWN_TOOL_NAME = "unknown"


def parse_json_or_raw(value: Any) -> Any:
    """Parse a JSON string, keeping the raw value when it is not valid JSON."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return value


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Parse a tool call's argument string into a dict.

    Anything that does not decode to a JSON object becomes ``{}``.
    """
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def decode_tool_call(tool_call: dict, provider: str) -> ToolCall:
    """Decode a function or custom wire tool call into a ``ToolCall``.

    Complete responses and accumulated streams both go through here, so a
    call's arguments look the same to the policy evaluator either way.
    Free-text custom input becomes ``{"input": <text>}``.
    """
    call_id = tool_call.get("id") or ""
    if tool_call.get("type") == "custom" or "custom" in tool_call:
        custom = tool_call.get("custom") or {}
        raw_input = custom.get("input")
        parsed = parse_json_or_raw(raw_input)
        if isinstance(parsed, dict):
            arguments = parsed
        elif raw_input in (None, ""):
            arguments = {}
        else:
            arguments = {"input": raw_input}
        return ToolCall(id=call_id, name=custom.get("name") or UNKNOWN_TOOL_NAME, arguments=arguments)

    function = tool_call.get("function")
    if not function:
        logger.warning("tool_call_shape_unknown", provider=provider, tool_call_id=call_id)
        return ToolCall(id=call_id, name=UNKNOWN_TOOL_NAME)

    raw_arguments = function.get("arguments")
    arguments = parse_arguments(raw_arguments)
    if not arguments and isinstance(raw_arguments, str) and raw_arguments.strip() not in ("", "{}"):
        logger.warning(
            "tool_call_arguments_unparseable",
            provider=provider,
            tool_call_id=call_id,
            tool_name=function.get("name"),
        )
    return ToolCall(id=call_id, name=function.get("name") or UNKNOWN_TOOL_NAME, arguments=arguments)


def canonical_arguments_json(raw: Any) -> str:
    """Render tool arguments as canonical JSON text.

    Strings are parsed first so pre-serialized arguments are not double
    encoded; strings that are not JSON are rendered as a JSON string.
    """
    return json.dumps(parse_json_or_raw(raw), ensure_ascii=False, sort_keys=True)


def content_to_text(content: Any) -> str:
    """Flatten tool message content into one string.

    OpenAI-style text part lists are joined; other structured content is
    serialized as JSON.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list) and all(
        isinstance(p, dict) and p.get("type") == "text" for p in content
    ):
        return "".join(p.get("text", "") for p in content)
    return json.dumps(content, ensure_ascii=False)


def unwrap_tool_content(content: str) -> str:
    """Undo double JSON encoding of tool output.

    Some MCP clients send tool output as a JSON string whose value is itself
    JSON text. Peel string layers while they decode to an object or array.
    """
    current = content
    for _ in range(4):
        try:
            decoded = json.loads(current)
        except ValueError:
            return current
        if not isinstance(decoded, str):
            return current
        stripped = decoded.strip()
        if not stripped.startswith(("{", "[")):
            return current
        current = stripped
    return current
