"""Tests for the character-based token estimator."""

from __future__ import annotations

import pytest

from aztec.ai.tokens import CHARS_PER_TOKEN, estimate_tokens


def test_empty_text_is_zero_tokens() -> None:
    assert estimate_tokens("") == 0


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("a", 1),
        ("abcd", 1),
        ("abcde", 2),
        ("x" * 40_000, 10_000),
        ("x" * 40_001, 10_001),
    ],
)
def test_estimate_rounds_up_per_four_characters(text: str, expected: int) -> None:
    assert estimate_tokens(text) == expected


def test_estimate_is_stable_across_calls() -> None:
    text = "The quick brown fox jumps over the lazy dog."

    assert estimate_tokens(text) == estimate_tokens(text)


def test_estimate_counts_characters_not_bytes() -> None:
    # Four multi-byte characters are still one token.
    assert estimate_tokens("éééé") == 1
    assert CHARS_PER_TOKEN == 4


def test_estimate_is_monotonic_in_length() -> None:
    counts = [estimate_tokens("y" * length) for length in range(0, 64)]

    assert counts == sorted(counts)
