"""Token counting utilities."""

from __future__ import annotations

from functools import lru_cache
from typing import Protocol

import tiktoken


class Tokenizer(Protocol):
    """Anything that turns text into a token sequence."""

    def encode(self, text: str) -> list[int]: ...


@lru_cache(maxsize=32)
def get_tokenizer(model: str = "gpt-4o") -> Tokenizer:
    """Return a tiktoken encoding for ``model``.

    Uses cl100k_base as a reasonable approximation for models tiktoken does
    not know about (Mistral, MiniMax, GLM, routed OpenRouter slugs).
    """
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str, tokenizer: Tokenizer) -> int:
    """Count tokens in text."""
    return len(tokenizer.encode(text))
