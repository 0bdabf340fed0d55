"""Configuration management using Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway settings loaded from environment variables."""

    # Upstream base URLs
    openai_base_url: str = "https://api.openai.com/v1"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    mistral_base_url: str = "https://api.mistral.ai/v1"
    minimax_base_url: str = "https://api.minimax.io/v1"
    zai_base_url: str = "https://api.z.ai/api/paas/v4"

    # Fallback API keys, used when the client request carries none
    openai_api_key: str = ""
    openrouter_api_key: str = ""
    mistral_api_key: str = ""
    minimax_api_key: str = ""
    zai_api_key: str = ""

    # OpenRouter attribution headers (HTTP-Referer / X-Title)
    openrouter_referer: str = ""
    openrouter_title: str = ""

    # Tool result compression
    toon_compression_enabled: bool = True
    # Token budget used when measuring a single tool result
    toon_max_tokens: int = 4000

    # Transport
    upstream_timeout_seconds: float = 120.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
