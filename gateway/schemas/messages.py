"""Canonical, provider-agnostic message schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

from gateway.schemas.tools import ToolResult

Role = Literal["system", "user", "assistant", "tool", "developer", "function"]


class TextPart(BaseModel):
    """Plain text content part."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    """Image reference content part."""

    model_config = ConfigDict(frozen=True)

    type: Literal["image_url"] = "image_url"
    url: str
    detail: str | None = None


class RefusalPart(BaseModel):
    """Refusal text emitted by the model."""

    model_config = ConfigDict(frozen=True)

    type: Literal["refusal"] = "refusal"
    refusal: str


ContentPart = TextPart | ImagePart | RefusalPart


class CanonicalMessage(BaseModel):
    """A conversation message in the gateway's common format.

    ``tool_calls`` is only populated for ``tool`` messages whose call id could
    be correlated with an earlier assistant tool call; it then holds exactly
    one ``ToolResult``.
    """

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str | list[ContentPart] | None = None
    tool_calls: list[ToolResult] | None = None

    def text(self) -> str:
        """Return the textual content, joining text parts."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text for p in self.content if isinstance(p, TextPart))
