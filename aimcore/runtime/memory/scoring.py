"""
Module: aimcore/runtime/memory/scoring.py
Summary: Tier assignment, RS components (QS, IDS, DD) and temporal decay.
Inputs: content text, tag list, stored score + last access timestamp
Outputs: floats in [0, 1] and a tier label
Related: aimcore/runtime/memory/memory_store.py
Stability: stable; formulas are part of the ranking contract

RS = QS × IDS × (1 − DD)
QS = 0.4·completeness + 0.3·density + 0.3·relevance
IDS = log10(|tags| + 1) × min(|tags| / 3, 1), capped at 1
decayed = RS × τ^(hours since last access)
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Iterable, Optional

from .models import MemoryTier

TIER_THRESHOLDS: dict[str, int] = {
    "short": 200,
    "medium": 800,
    "large": 8000,
}

DEFAULT_TAU = 0.95

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def _clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def determine_tier(token_count: int) -> MemoryTier:
    """Bands are inclusive at the upper bound of the lower tier."""
    if token_count <= TIER_THRESHOLDS["short"]:
        return "short"
    if token_count <= TIER_THRESHOLDS["medium"]:
        return "medium"
    if token_count <= TIER_THRESHOLDS["large"]:
        return "large"
    return "super_index"


def completeness_score(content: str) -> float:
    sentences = [s for s in _SENTENCE_SPLIT.split(content) if s.strip()]
    has_multiple_sentences = len(sentences) > 1
    has_structure = "\n" in content or "- " in content
    score = 0.5 if len(content) > 100 else 0.3
    if has_multiple_sentences:
        score += 0.3
    if has_structure:
        score += 0.2
    return _clamp(score)


def density_score(content: str) -> float:
    """Lexical diversity: unique words over total words."""
    words = content.lower().split()
    if not words:
        return 0.0
    return _clamp(len(set(words)) / len(words))


def relevance_score(tags: Iterable[str]) -> float:
    return _clamp(len(list(tags)) / 5)


def quality_score(content: str, tags: Iterable[str]) -> float:
    tag_list = list(tags)
    return _clamp(
        0.4 * completeness_score(content)
        + 0.3 * density_score(content)
        + 0.3 * relevance_score(tag_list)
    )


def index_depth_score(tags: Iterable[str]) -> float:
    n = len(list(tags))
    if n == 0:
        return 0.0
    depth = math.log(n + 1) / math.log(10)
    connectivity = min(n / 3, 1.0)
    # log10 passes 1 beyond nine tags; RS must stay within [0, 1]
    return _clamp(depth * connectivity)


def retrieval_score(qs: float, ids: float, dd: float) -> float:
    return _clamp(qs * ids * (1.0 - dd))


def hours_since(last_accessed_at: datetime, now: datetime) -> float:
    delta = (now - last_accessed_at).total_seconds() / 3600.0
    return max(0.0, delta)


def apply_temporal_decay(
    score: Optional[float],
    last_accessed_at: datetime,
    now: datetime,
    tau: float = DEFAULT_TAU,
) -> float:
    """RS × τ^hours; a missing score decays as zero."""
    if score is None:
        return 0.0
    return score * math.pow(tau, hours_since(last_accessed_at, now))


__all__ = [
    "TIER_THRESHOLDS",
    "DEFAULT_TAU",
    "determine_tier",
    "completeness_score",
    "density_score",
    "relevance_score",
    "quality_score",
    "index_depth_score",
    "retrieval_score",
    "hours_since",
    "apply_temporal_decay",
]
