"""Tests for the provider registry."""

from __future__ import annotations

import pytest

from gateway.errors import UnknownProviderError
from gateway.providers import (
    MinimaxProvider,
    MistralProvider,
    OpenAIProvider,
    OpenRouterProvider,
    ZaiProvider,
)
from gateway.registry import build_providers, get_provider, list_providers


@pytest.mark.parametrize(
    "provider_id,provider_cls",
    [
        ("openai", OpenAIProvider),
        ("openrouter", OpenRouterProvider),
        ("mistral", MistralProvider),
        ("minimax", MinimaxProvider),
        ("zai", ZaiProvider),
    ],
)
def test_get_provider(provider_id, provider_cls):
    provider = get_provider(provider_id)

    assert isinstance(provider, provider_cls)
    assert provider.provider == provider_id
    assert provider.interaction_type == f"{provider_id}:chatCompletions"


def test_unknown_provider():
    with pytest.raises(UnknownProviderError, match="Unknown provider: anthropic"):
        get_provider("anthropic")


def test_list_providers():
    assert list_providers() == ["minimax", "mistral", "openai", "openrouter", "zai"]


def test_build_providers_binds_settings(settings):
    providers = build_providers(settings)

    assert providers["openrouter"].settings is settings
    assert get_provider("zai", providers) is providers["zai"]


def test_explicit_registry_is_used():
    with pytest.raises(UnknownProviderError):
        get_provider("openai", {})
