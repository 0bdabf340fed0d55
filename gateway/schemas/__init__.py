"""Pydantic schemas for the canonical message model."""

from gateway.schemas.common import ClientOptions, ToolCompressionStats, UsageView
from gateway.schemas.messages import (
    CanonicalMessage,
    ContentPart,
    ImagePart,
    RefusalPart,
    TextPart,
)
from gateway.schemas.tools import (
    ToolCall,
    ToolDefinition,
    ToolInvocationRequest,
    ToolResult,
)

__all__ = [
    "CanonicalMessage",
    "ClientOptions",
    "ContentPart",
    "ImagePart",
    "RefusalPart",
    "TextPart",
    "ToolCall",
    "ToolCompressionStats",
    "ToolDefinition",
    "ToolInvocationRequest",
    "ToolResult",
    "UsageView",
]
