"""
Token Counting - Swappable token estimator

WHAT: TokenCounter capability used by the store and the orchestration engine
WHERE: aimcore/runtime/memory/tokens.py - shared by memory + orchestration
WHO: Tiering, compression, condensing and budget accounting
TIME: O(1) per call

The default estimator approximates one token per four characters. It is a
documented simplification, not a tokenizer; substitute a real tokenizer by
passing any object with a ``count(text) -> int`` method.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol


class TokenCounter(Protocol):
    """Anything that can estimate the token length of a string."""

    def count(self, text: str) -> int:
        ...


@dataclass(slots=True, frozen=True)
class CharTokenCounter:
    """ceil(len(text) / chars_per_token)."""

    chars_per_token: int = 4

    def count(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)


DEFAULT_TOKEN_COUNTER = CharTokenCounter()


__all__ = ["TokenCounter", "CharTokenCounter", "DEFAULT_TOKEN_COUNTER"]
