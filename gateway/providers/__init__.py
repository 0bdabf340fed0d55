"""Upstream provider implementations."""

from gateway.providers.base import LLMProvider, RequestAdapter, ResponseAdapter, StreamAdapter
from gateway.providers.minimax import MinimaxProvider
from gateway.providers.mistral import MistralProvider
from gateway.providers.openai import OpenAIProvider
from gateway.providers.openrouter import OpenRouterProvider
from gateway.providers.zai import ZaiProvider

__all__ = [
    "LLMProvider",
    "MinimaxProvider",
    "MistralProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "RequestAdapter",
    "ResponseAdapter",
    "StreamAdapter",
    "ZaiProvider",
]
