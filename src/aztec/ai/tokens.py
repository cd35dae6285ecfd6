"""Token estimation utilities for chat context budgeting."""

from __future__ import annotations

import math

# Average characters per token for English prose (GPT-style tokenization)
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate the number of tokens in a text string.

    Uses a coarse heuristic of ~4 characters per token, rounded up. The
    estimate does not track any particular model's tokenizer.

    Args:
        text: The text to estimate tokens for.

    Returns:
        Estimated token count (0 for empty text).
    """
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


__all__ = ["CHARS_PER_TOKEN", "estimate_tokens"]
