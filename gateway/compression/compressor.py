"""TOON compression of ``tool`` message content.

Shared by every provider that speaks the chat-completions message format:
tool results arrive as JSON text, are re-encoded as TOON and substituted
only when the TOON form costs strictly fewer tokens. Content that is not
JSON (plain text, or TOON from an earlier pass) is left untouched, so
running the pass twice never compresses anything further.
"""

from __future__ import annotations

import json
import re

import structlog
import toon_format

from gateway.config import get_settings
from gateway.schemas.common import ToolCompressionStats
from gateway.utils.pricing import PriceLookup, StaticPriceTable, estimate_savings
from gateway.utils.tokens import Tokenizer, count_tokens, get_tokenizer
from gateway.utils.tool_content import content_to_text, unwrap_tool_content

logger = structlog.get_logger()


# Root array header of earlier TOON output, e.g. "[2]: a,b" or "[3]{id,name}:"
_TOON_ROOT_ARRAY = re.compile(r"^\[\d+[\t|]?\](?:\{[^}\n]*\})?:")


def _looks_like_json(text: str) -> bool:
    if _TOON_ROOT_ARRAY.match(text):
        return False
    return text[:1] in ("{", "[", '"')


def compress_tool_messages(
    messages: list[dict],
    model: str,
    *,
    tokenizer: Tokenizer | None = None,
    prices: PriceLookup | None = None,
    max_tokens: int | None = None,
) -> tuple[list[dict], ToolCompressionStats]:
    """Return a copy of ``messages`` with tool results TOON-encoded, plus stats.

    The input list and its message dicts are never mutated.
    """
    tokenizer = tokenizer or get_tokenizer(model)
    prices = prices or StaticPriceTable()
    budget = max_tokens if max_tokens is not None else get_settings().toon_max_tokens
    stats = ToolCompressionStats()

    result: list[dict] = []
    for message in messages:
        if message.get("role") != "tool":
            result.append(message)
            continue

        original = content_to_text(message.get("content"))
        stats.original_bytes += len(original.encode("utf-8"))

        compressed = _compress_one(original, tokenizer, budget, stats, message)
        if compressed is None:
            stats.compressed_bytes += len(original.encode("utf-8"))
            result.append(message)
            continue

        compressed_bytes = len(compressed.encode("utf-8"))
        stats.compressed_bytes += compressed_bytes
        stats.removed_bytes += len(original.encode("utf-8")) - compressed_bytes
        stats.compressed_count += 1
        result.append({**message, "content": compressed})

    if stats.compressed_count:
        stats.cost_savings = estimate_savings(model, stats.tokens_saved, prices)
        logger.info(
            "tool_results_compressed",
            model=model,
            compressed_count=stats.compressed_count,
            tokens_before=stats.tokens_before,
            tokens_after=stats.tokens_after,
            cost_savings=stats.cost_savings,
        )

    return result, stats


def _compress_one(
    original: str,
    tokenizer: Tokenizer,
    budget: int,
    stats: ToolCompressionStats,
    message: dict,
) -> str | None:
    """TOON-encode one tool result; None means keep the original."""
    unwrapped = unwrap_tool_content(original.strip())
    if not _looks_like_json(unwrapped):
        return None

    try:
        parsed = json.loads(unwrapped)
        if isinstance(parsed, str):
            return None
        encoded = toon_format.encode(parsed)
    except (ValueError, TypeError, RecursionError) as e:
        logger.warning(
            "tool_result_compression_failed",
            tool_call_id=message.get("tool_call_id"),
            error=str(e),
        )
        return None

    tokens_before = count_tokens(original, tokenizer)
    tokens_after = count_tokens(encoded, tokenizer)
    if tokens_after >= tokens_before:
        return None

    if tokens_before > budget:
        logger.info(
            "tool_result_over_budget",
            tool_call_id=message.get("tool_call_id"),
            tokens_before=tokens_before,
            tokens_after=tokens_after,
            budget=budget,
        )

    stats.tokens_before += tokens_before
    stats.tokens_after += tokens_after
    return encoded
