"""
Module: aimcore/runtime/memory/compression.py
Summary: Dumbbell compression planner (verbatim head + tail, placeholder middle).
Inputs: record content, token count, DumbbellConfig
Outputs: CompressionPlan or a rejection reason code
Related: aimcore/runtime/memory/memory_store.py (commits accepted plans)
Stability: stable; the middle placeholder stands in for an external summarizer

A plan is accepted only when both hold:
- head_span and tail_span are each ≥ head_tail_min of the original tokens
- compressed / original < compression_threshold
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(slots=True, frozen=True)
class DumbbellConfig:
    head_tail_min: float = 0.20
    compression_threshold: float = 0.15
    placeholder_tokens: int = 10

    def __post_init__(self) -> None:
        if not 0.0 < self.head_tail_min < 0.5:
            raise ValueError("head_tail_min must be in (0, 0.5)")
        if not 0.0 < self.compression_threshold <= 1.0:
            raise ValueError("compression_threshold must be in (0, 1]")
        if self.placeholder_tokens < 0:
            raise ValueError("placeholder_tokens must be non-negative")


@dataclass(slots=True, frozen=True)
class CompressionPlan:
    content: str
    original_tokens: int
    compressed_tokens: int
    head_span: int
    tail_span: int
    middle_span: int

    @property
    def ratio(self) -> float:
        return self.compressed_tokens / self.original_tokens


def plan_compression(
    content: str,
    token_count: int,
    config: DumbbellConfig | None = None,
) -> Tuple[Optional[CompressionPlan], str]:
    """Return ``(plan, "ok")`` or ``(None, reason)``."""

    cfg = config or DumbbellConfig()
    if token_count <= 0 or not content:
        return None, "empty"

    head_span = math.ceil(token_count * cfg.head_tail_min)
    tail_span = math.ceil(token_count * cfg.head_tail_min)
    middle_span = token_count - head_span - tail_span
    if middle_span <= 0:
        return None, "too_short"

    compressed_tokens = head_span + tail_span + cfg.placeholder_tokens
    ratio = compressed_tokens / token_count
    if ratio >= cfg.compression_threshold:
        return None, "ratio_not_worthwhile"

    floor = cfg.head_tail_min * token_count
    if head_span < floor or tail_span < floor:
        return None, "span_below_min"

    # Character cut points scale with the token spans so any TokenCounter works
    head_chars = math.ceil(len(content) * head_span / token_count)
    tail_chars = math.ceil(len(content) * tail_span / token_count)
    head = content[:head_chars]
    tail = content[len(content) - tail_chars:]
    compressed = f"{head}\n\n[... compressed {middle_span} tokens ...]\n\n{tail}"

    plan = CompressionPlan(
        content=compressed,
        original_tokens=token_count,
        compressed_tokens=compressed_tokens,
        head_span=head_span,
        tail_span=tail_span,
        middle_span=middle_span,
    )
    return plan, "ok"


__all__ = ["DumbbellConfig", "CompressionPlan", "plan_compression"]
