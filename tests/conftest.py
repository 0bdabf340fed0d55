"""Shared test fixtures for the gateway test suite.

Provides a deterministic tokenizer (so tiktoken never downloads encodings),
a policy store and settings that ignore the local environment.
"""

from __future__ import annotations

import re

import pytest

from gateway.config import Settings
from gateway.policies.models import InMemoryPolicyStore


class FakeTokenizer:
    """One token per word and one per punctuation character."""

    _TOKEN = re.compile(r"\w+|[^\w\s]")

    def encode(self, text: str) -> list[int]:
        return [hash(tok) & 0xFFFF for tok in self._TOKEN.findall(text)]


@pytest.fixture
def tokenizer():
    return FakeTokenizer()


@pytest.fixture(autouse=True)
def fake_default_tokenizer(monkeypatch):
    """Adapters compress with the default tokenizer; keep it offline."""
    monkeypatch.setattr(
        "gateway.compression.compressor.get_tokenizer", lambda model: FakeTokenizer()
    )


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        openai_api_key="sk-openai-test",
        openrouter_api_key="sk-or-test",
        mistral_api_key="mistral-test",
        minimax_api_key="minimax-test",
        zai_api_key="zai-test",
        openrouter_referer="https://gateway.example.com",
        openrouter_title="Gateway Tests",
    )


@pytest.fixture
def policy_store():
    return InMemoryPolicyStore()
