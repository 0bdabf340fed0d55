"""Tool invocation policy evaluation.

Given the tool calls a model wants to make, decide whether any must be
blocked and, if so, produce the refusal pair that replaces the model's
answer: a tagged ``refusal_message`` that downstream code can pattern-match
and a ``content_message`` shown to the user/LLM as the assistant reply.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

import structlog

from gateway.policies.models import PolicyStore, ToolPolicyConfig, rule_matches
from gateway.schemas.tools import ToolInvocationRequest
from gateway.utils.tool_content import canonical_arguments_json, parse_json_or_raw

logger = structlog.get_logger()

TOOL_NAME_TAG = "gateway-tool-name"
UNTRUSTED_CONTEXT_REASON = (
    "Tool invocation blocked: the context contains untrusted data and this tool "
    "is not allowed to run when untrusted data is present"
)

_TOOL_NAME_PATTERN = re.compile(rf"<{TOOL_NAME_TAG}>(.*?)</{TOOL_NAME_TAG}>", re.DOTALL)


def _block_reason(
    config: ToolPolicyConfig, arguments: object, untrusted_context_present: bool
) -> str | None:
    """Return why the call is blocked, or None when it may run."""
    args = arguments if isinstance(arguments, dict) else {}
    allowed_in_untrusted_context = config.allow_usage_when_untrusted_data_is_present

    for rule in config.rules:
        if not rule_matches(rule.argument_path, rule.operator, rule.value, args):
            continue
        if rule.action == "block_always":
            return rule.reason or (
                f"Argument '{rule.argument_path}' {rule.operator} '{rule.value}' is not allowed"
            )
        if rule.action == "allow_when_context_is_untrusted":
            allowed_in_untrusted_context = True

    if untrusted_context_present and not allowed_in_untrusted_context:
        return UNTRUSTED_CONTEXT_REASON
    return None


def format_refusal(tool_name: str, tool_args: object, reason: str) -> tuple[str, str]:
    """Build the (refusal_message, content_message) pair for a blocked call."""
    args_json = canonical_arguments_json(tool_args)
    content_message = (
        f"\nI tried to invoke the {tool_name} tool with the following arguments: "
        f"{args_json}.\n\nHowever, I was denied by a tool invocation policy:\n\n{reason}"
    )
    refusal_message = (
        f"<{TOOL_NAME_TAG}>{tool_name}</{TOOL_NAME_TAG}>\n"
        f"<gateway-tool-arguments>{args_json}</gateway-tool-arguments>\n"
        f"<gateway-tool-reason>{reason}</gateway-tool-reason>\n"
        f"{content_message}"
    )
    return refusal_message, content_message


def extract_blocked_tool_name(refusal_message: str) -> str | None:
    """Recover the tool name embedded in a refusal message."""
    match = _TOOL_NAME_PATTERN.search(refusal_message)
    return match.group(1) if match else None


def evaluate_policies(
    tool_calls: Iterable[ToolInvocationRequest],
    agent_id: str,
    untrusted_context_present: bool,
    *,
    store: PolicyStore,
) -> tuple[str, str] | None:
    """Return a refusal for the first blocked call, or None when all calls may run."""
    for call in tool_calls:
        config = store.get_tool_policy(agent_id, call.tool_call_name)
        if config is None:
            continue

        arguments = parse_json_or_raw(call.tool_call_args)
        reason = _block_reason(config, arguments, untrusted_context_present)
        if reason is None:
            continue

        logger.info(
            "tool_invocation_blocked",
            agent_id=agent_id,
            tool_name=call.tool_call_name,
            untrusted_context=untrusted_context_present,
            reason=reason,
        )
        return format_refusal(call.tool_call_name, arguments, reason)

    return None
