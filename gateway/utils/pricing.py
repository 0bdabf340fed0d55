"""Model price lookup used to estimate savings from tool result compression."""

from __future__ import annotations

from typing import Protocol

# Cost per 1M input tokens
MODEL_INPUT_COSTS: dict[str, float] = {
    "gpt-4o": 2.5,
    "gpt-4o-mini": 0.15,
    "gpt-4.1": 2.0,
    "gpt-4.1-mini": 0.4,
    "gpt-4.1-nano": 0.1,
    "mistral-large-latest": 2.0,
    "mistral-medium-latest": 0.4,
    "mistral-small-latest": 0.1,
    "codestral-latest": 0.3,
    "MiniMax-M2": 0.3,
    "abab6.5s-chat": 0.14,
    "glm-4.6": 0.6,
    "glm-4.5": 0.6,
    "glm-4.5-air": 0.2,
}


class PriceLookup(Protocol):
    """Resolves a model name to its input price per token."""

    def input_price_per_token(self, model: str) -> float | None: ...


class StaticPriceTable:
    """Table-backed price lookup.

    Unknown models resolve to ``None``; a missing price is not an error.
    """

    def __init__(self, costs_per_million: dict[str, float] | None = None):
        self._costs = dict(MODEL_INPUT_COSTS if costs_per_million is None else costs_per_million)

    def input_price_per_token(self, model: str) -> float | None:
        if model in self._costs:
            return self._costs[model] / 1_000_000

        # OpenRouter style slugs: "mistralai/mistral-large-latest"
        short_name = model.rsplit("/", 1)[-1]
        if short_name in self._costs:
            return self._costs[short_name] / 1_000_000
        return None


def estimate_savings(
    model: str, tokens_saved: int, prices: PriceLookup
) -> float | None:
    """Estimate the USD saved by sending ``tokens_saved`` fewer input tokens."""
    if tokens_saved <= 0:
        return None
    price = prices.input_price_per_token(model)
    if price is None:
        return None
    return tokens_saved * price
