"""Untrusted-context detection over the messages of a request."""

from __future__ import annotations

import structlog

from gateway.policies.models import PolicyStore, TrustedDataPolicy, rule_matches
from gateway.schemas.messages import CanonicalMessage

logger = structlog.get_logger()


def _matching_actions(
    policies: list[TrustedDataPolicy], message: CanonicalMessage
) -> set[str]:
    subject = {"role": message.role, "content": message.text()}
    if message.tool_calls:
        result = message.tool_calls[0]
        subject["content"] = result.content if result.content is not None else ""
    return {
        p.action
        for p in policies
        if rule_matches(p.attribute_path, p.operator, p.value, subject)
    }


def evaluate_trusted_data(
    messages: list[CanonicalMessage], agent_id: str, *, store: PolicyStore
) -> bool:
    """Return True when any user or tool message makes the context untrusted.

    User messages are untrusted only when a ``mark_as_untrusted`` or
    ``block_always`` rule matches them. Tool results are additionally
    untrusted when their tool is not trusted by default and no
    ``mark_as_trusted`` rule vouches for them.
    """
    for index, message in enumerate(messages):
        if message.role == "user":
            tool_name = None
        elif message.role == "tool" and message.tool_calls:
            tool_name = message.tool_calls[0].name
        else:
            continue

        actions = _matching_actions(store.get_trusted_data_policies(agent_id, tool_name), message)
        if actions & {"mark_as_untrusted", "block_always"}:
            logger.info(
                "untrusted_context_detected",
                agent_id=agent_id,
                message_index=index,
                tool_name=tool_name,
            )
            return True

        if tool_name is None or "mark_as_trusted" in actions:
            continue
        config = store.get_tool_policy(agent_id, tool_name)
        if config is not None and not config.results_trusted_by_default:
            logger.info(
                "untrusted_tool_result",
                agent_id=agent_id,
                message_index=index,
                tool_name=tool_name,
            )
            return True

    return False
