"""Provider registry: provider id -> provider implementation."""

from __future__ import annotations

import structlog

from gateway.config import Settings
from gateway.errors import UnknownProviderError
from gateway.providers import (
    LLMProvider,
    MinimaxProvider,
    MistralProvider,
    OpenAIProvider,
    OpenRouterProvider,
    ZaiProvider,
)

logger = structlog.get_logger()

PROVIDERS: dict[str, LLMProvider] = {
    "openai": OpenAIProvider(),
    "openrouter": OpenRouterProvider(),
    "mistral": MistralProvider(),
    "minimax": MinimaxProvider(),
    "zai": ZaiProvider(),
}


def build_providers(settings: Settings) -> dict[str, LLMProvider]:
    """Fresh provider instances bound to explicit settings instead of the cached ones."""
    return {
        "openai": OpenAIProvider(settings),
        "openrouter": OpenRouterProvider(settings),
        "mistral": MistralProvider(settings),
        "minimax": MinimaxProvider(settings),
        "zai": ZaiProvider(settings),
    }


def get_provider(provider_id: str, providers: dict[str, LLMProvider] | None = None) -> LLMProvider:
    """Look up a provider by id."""
    registry = PROVIDERS if providers is None else providers
    provider = registry.get(provider_id)
    if provider is None:
        logger.warning("unknown_provider", provider=provider_id, known=sorted(registry))
        raise UnknownProviderError(provider_id)
    return provider


def list_providers() -> list[str]:
    return sorted(PROVIDERS)
