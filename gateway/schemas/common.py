"""Common value types shared by adapters, the compressor and the proxy."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UsageView(BaseModel):
    """Token usage normalized across providers; absent counts are 0."""

    model_config = ConfigDict(frozen=True)

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)

    @classmethod
    def from_openai_usage(cls, usage: dict | None) -> UsageView:
        """Build from a ``prompt_tokens``/``completion_tokens`` usage object."""
        if not usage:
            return cls()
        return cls(
            input_tokens=max(int(usage.get("prompt_tokens") or 0), 0),
            output_tokens=max(int(usage.get("completion_tokens") or 0), 0),
        )


class ToolCompressionStats(BaseModel):
    """Observational counters for one TOON compression pass over a request.

    ``removed_bytes`` is what the substituted results saved. Tool results are
    re-encoded, never dropped, so ``removed_count`` stays 0.
    """

    original_bytes: int = 0
    compressed_bytes: int = 0
    removed_bytes: int = 0
    compressed_count: int = 0
    removed_count: int = 0
    tokens_before: int = 0
    tokens_after: int = 0
    cost_savings: float | None = None

    @property
    def tokens_saved(self) -> int:
        return self.tokens_before - self.tokens_after


class ClientOptions(BaseModel):
    """Options passed to a provider's ``create_client``."""

    base_url: str | None = None
    default_headers: dict[str, str] = Field(default_factory=dict)
    timeout: float | None = None
    mock_mode: bool = False
