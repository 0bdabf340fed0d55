"""Policy configuration schemas and the read-only store interface.

Policies are authored and persisted elsewhere; the evaluators only read
them through ``PolicyStore``.
"""

from __future__ import annotations

import json
import re
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

Operator = Literal[
    "equal",
    "notEqual",
    "contains",
    "notContains",
    "startsWith",
    "endsWith",
    "regex",
]


class ToolInvocationRule(BaseModel):
    """Argument-level rule: match ``argument_path`` of a call against ``value``."""

    argument_path: str
    operator: Operator
    value: str
    action: Literal["block_always", "allow_when_context_is_untrusted"] = "block_always"
    reason: str = ""


class ToolPolicyConfig(BaseModel):
    """Invocation policy for one tool attached to one agent."""

    tool_name: str
    allow_usage_when_untrusted_data_is_present: bool = False
    # Results of this tool count as untrusted unless a trusted-data rule says otherwise
    results_trusted_by_default: bool = True
    rules: list[ToolInvocationRule] = Field(default_factory=list)


class TrustedDataPolicy(BaseModel):
    """Rule applied to message content to decide whether it is trusted.

    A rule with ``tool_name`` None applies to user messages and to the
    results of every tool; otherwise only to that tool's results.
    """

    attribute_path: str = "$.content"
    operator: Operator
    value: str
    action: Literal["mark_as_trusted", "mark_as_untrusted", "block_always"]
    tool_name: str | None = None
    description: str = ""


def _lookup_path(data: Any, path: str) -> Any:
    """Resolve ``$.a.b`` or ``a.b`` against nested dicts; None when missing."""
    if path.startswith("$"):
        path = path[1:].lstrip(".")
    current = data
    for part in filter(None, path.split(".")):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


def matches(operator: Operator, actual: Any, expected: str) -> bool:
    """Apply a policy operator to a resolved value."""
    if actual is None:
        return operator in ("notEqual", "notContains")
    text = actual if isinstance(actual, str) else json.dumps(actual, ensure_ascii=False)
    if operator == "equal":
        return text == expected
    if operator == "notEqual":
        return text != expected
    if operator == "contains":
        return expected in text
    if operator == "notContains":
        return expected not in text
    if operator == "startsWith":
        return text.startswith(expected)
    if operator == "endsWith":
        return text.endswith(expected)
    if operator == "regex":
        try:
            return re.search(expected, text) is not None
        except re.error:
            return False
    return False


def rule_matches(path: str, operator: Operator, expected: str, data: Any) -> bool:
    return matches(operator, _lookup_path(data, path), expected)


class PolicyStore(Protocol):
    """Read-only access to policy configuration, keyed by agent and tool."""

    def get_tool_policy(self, agent_id: str, tool_name: str) -> ToolPolicyConfig | None: ...

    def get_trusted_data_policies(
        self, agent_id: str, tool_name: str | None
    ) -> list[TrustedDataPolicy]: ...


class InMemoryPolicyStore:
    """Dict-backed ``PolicyStore`` used in tests and single-process setups."""

    def __init__(self) -> None:
        self._tools: dict[tuple[str, str], ToolPolicyConfig] = {}
        self._trusted: dict[str, list[TrustedDataPolicy]] = {}

    def add_tool_policy(self, agent_id: str, config: ToolPolicyConfig) -> None:
        self._tools[(agent_id, config.tool_name)] = config

    def add_trusted_data_policy(self, agent_id: str, policy: TrustedDataPolicy) -> None:
        self._trusted.setdefault(agent_id, []).append(policy)

    def get_tool_policy(self, agent_id: str, tool_name: str) -> ToolPolicyConfig | None:
        return self._tools.get((agent_id, tool_name))

    def get_trusted_data_policies(
        self, agent_id: str, tool_name: str | None
    ) -> list[TrustedDataPolicy]:
        return [
            p for p in self._trusted.get(agent_id, []) if p.tool_name in (None, tool_name)
        ]
