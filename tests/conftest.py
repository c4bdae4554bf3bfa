"""Shared fixtures for tokenledger tests."""

from __future__ import annotations

import pytest

from tokenledger.services.tokens import TokenCounter, get_token_counter


class WordEncoding:
    """One token per whitespace-separated word, plus one per newline."""

    def encode(self, text: str, **kwargs) -> list[int]:
        return list(range(len(text.split()) + text.count("\n")))


@pytest.fixture
def word_counter() -> TokenCounter:
    return TokenCounter(WordEncoding())


@pytest.fixture
def cl100k_counter() -> TokenCounter:
    """Real cl100k_base counter; skipped when the encoding cannot be loaded (offline)."""
    try:
        return TokenCounter.for_encoding("cl100k_base")
    except Exception as exc:
        pytest.skip(f"cl100k_base encoding unavailable: {exc}")


@pytest.fixture(autouse=True)
def _reset_token_counter_cache():
    get_token_counter.cache_clear()
    yield
    get_token_counter.cache_clear()
