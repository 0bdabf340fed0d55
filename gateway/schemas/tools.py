"""Canonical tool schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ToolDefinition(BaseModel):
    """A tool offered to the model, independent of any provider's wire shape."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str | None = None
    input_schema: dict[str, Any] = Field(default_factory=dict)


class ToolCall(BaseModel):
    """A tool invocation requested by the model.

    ``id`` is the provider-issued opaque identifier; ``arguments`` is always
    structured even when the wire form was a string.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of a tool call, as carried by a ``tool`` message."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    content: Any = None
    is_error: bool = False


class ToolInvocationRequest(BaseModel):
    """A proposed tool call handed to the policy evaluator.

    ``tool_call_args`` is usually the JSON string the provider emitted, but
    already-decoded structures are accepted too.
    """

    tool_call_name: str
    tool_call_args: Any = "{}"
