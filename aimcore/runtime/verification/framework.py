"""
Verification Framework - Uncertainty and provenance gating

WHAT: Stateless evaluator deciding whether a candidate answer can be trusted
WHERE: aimcore/runtime/verification/framework.py - consumed by the VERIFY node
WHO: OrchestrationEngine, and auditors re-checking stored chains
TIME: O(answer + citations) per call, no I/O

Checks:
- provenance coverage κ ≥ min_provenance
- confidence level (high/medium/low, or abstain on high semantic entropy)
- calibration |confidence − κ| ≤ max_calibration_error, with κ standing in
  for accuracy (a single-trial proxy, not a binned ECE)

Boundary Notes:
- Reads chain metrics through a protocol; never imports the engine
- Semantic clustering is normalized exact match; embedding clustering would
  plug in behind ``cluster_completions``
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional, Protocol, Sequence

import numpy as np

from ..memory.models import MemoryRecord
from .models import (
    ConfidenceLevel,
    ProvenanceBinding,
    ProvenanceEntry,
    VerificationResult,
    VerificationThresholds,
)

logger = logging.getLogger(__name__)


class ChainMetrics(Protocol):
    """The slice of a reasoning chain the verifier reads."""

    confidence: float
    provenance_coverage: float
    semantic_entropy: Optional[float]


def _quote_of(citation: Any) -> str:
    if isinstance(citation, Mapping):
        return str(citation.get("quote") or "")
    return str(getattr(citation, "quote", None) or "")


def cluster_completions(completions: Sequence[str]) -> List[List[str]]:
    clusters: dict[str, List[str]] = {}
    for text in completions:
        clusters.setdefault(text.lower().strip(), []).append(text)
    return list(clusters.values())


class VerificationFramework:
    """Evaluates answers against provenance, entropy and calibration thresholds."""

    def __init__(self, thresholds: VerificationThresholds | None = None) -> None:
        self.thresholds = thresholds or VerificationThresholds()

    # ------------------ metrics -----------------
    def calculate_provenance_coverage(self, answer: str, citations: Iterable[Any]) -> float:
        """κ = min(1, Σ len(quote) / len(answer)); 0 for an empty answer."""
        if not answer:
            return 0.0
        cited = sum(len(_quote_of(c)) for c in citations)
        return min(1.0, cited / len(answer))

    def calculate_semantic_entropy(self, completions: Sequence[str]) -> float:
        """Shannon entropy (bits) over clusters of equivalent completions."""
        if len(completions) < 2:
            return 0.0
        sizes = np.array([len(c) for c in cluster_completions(completions)], dtype=float)
        probs = sizes / sizes.sum()
        return float(max(0.0, -np.sum(probs * np.log2(probs))))

    def calculate_logit_variance(self, samples: Sequence[Sequence[float]]) -> float:
        """Mean per-position variance across samples drawn at different temperatures."""
        if len(samples) == 0:
            return 0.0
        lengths = {len(s) for s in samples}
        if len(lengths) != 1:
            raise ValueError("logit samples must share one length")
        arr = np.asarray(samples, dtype=float)
        if arr.shape[1] == 0:
            return 0.0
        return float(np.var(arr, axis=0).mean())

    def confidence_level(self, confidence: float, semantic_entropy: Optional[float] = None) -> ConfidenceLevel:
        t = self.thresholds
        if semantic_entropy is not None and semantic_entropy > t.abstain_entropy:
            return "abstain"
        if confidence >= t.high_confidence:
            return "high"
        if confidence >= t.medium_confidence:
            return "medium"
        return "low"

    def estimate_calibration(self, confidence: float, provenance_coverage: float) -> float:
        return abs(confidence - provenance_coverage)

    # ------------------ gates -------------------
    def verify_chain(self, chain: ChainMetrics) -> VerificationResult:
        t = self.thresholds
        issues: List[str] = []
        recommendations: List[str] = []

        kappa = max(0.0, min(1.0, chain.provenance_coverage))
        entropy = getattr(chain, "semantic_entropy", None)
        provenance_passed = kappa >= t.min_provenance
        if not provenance_passed:
            issues.append(f"Provenance coverage {kappa:.2f} below threshold {t.min_provenance}")
            recommendations.append("Increase citation density or retrieve more relevant sources")

        level = self.confidence_level(chain.confidence, entropy)
        if level in ("low", "abstain"):
            issues.append(f"Confidence level: {level} (score: {chain.confidence:.2f})")
            recommendations.append("Consider multi-temperature sampling or retrieve additional context")

        if entropy is not None and entropy > t.abstain_entropy:
            issues.append(f"High semantic entropy {entropy:.2f} indicates uncertainty")
            recommendations.append("Abstain from providing definitive answer or add uncertainty qualifiers")

        calibration = self.estimate_calibration(chain.confidence, kappa)
        if calibration > t.max_calibration_error:
            issues.append(f"Poor calibration (ECE: {calibration:.3f}, target: <{t.max_calibration_error})")
            recommendations.append("Apply temperature scaling or isotonic regression")

        passed = provenance_passed and level != "abstain" and calibration <= t.max_calibration_error
        if not passed:
            logger.debug(f"Verification failed: {issues}")
        return VerificationResult(
            passed=passed,
            provenance_coverage=kappa,
            confidence_level=level,
            calibration_score=calibration,
            semantic_entropy=entropy,
            logit_variance=getattr(chain, "logit_variance", None),
            issues=issues,
            recommendations=recommendations,
        )

    def should_abstain(
        self,
        confidence: float,
        semantic_entropy: Optional[float] = None,
        provenance_coverage: Optional[float] = None,
    ) -> bool:
        t = self.thresholds
        if confidence < t.medium_confidence:
            return True
        if semantic_entropy is not None and semantic_entropy > t.abstain_entropy:
            return True
        if provenance_coverage is not None and provenance_coverage < t.min_provenance:
            return True
        return False

    def bind_provenance(self, answer: str, sources: Iterable[MemoryRecord]) -> ProvenanceBinding:
        return ProvenanceBinding(
            answer=answer,
            provenance=[
                ProvenanceEntry(
                    citation_id=s.content_hash,
                    content=s.content,
                    score=s.retrieval_score or 0.0,
                    tags=list(s.tags),
                )
                for s in sources
            ],
        )


__all__ = ["ChainMetrics", "VerificationFramework", "cluster_completions"]
