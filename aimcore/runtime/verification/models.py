"""Verification result types and gate thresholds."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

ConfidenceLevel = Literal["high", "medium", "low", "abstain"]


@dataclass(slots=True, frozen=True)
class VerificationThresholds:
    min_provenance: float = 0.85
    high_confidence: float = 0.80
    medium_confidence: float = 0.60
    abstain_entropy: float = 2.0
    max_calibration_error: float = 0.10


class VerificationResult(BaseModel):
    """Derived verdict for one (answer, citations, chain metrics) triple."""

    passed: bool
    provenance_coverage: float = Field(ge=0.0, le=1.0)
    confidence_level: ConfidenceLevel
    calibration_score: float = Field(ge=0.0)
    semantic_entropy: Optional[float] = None
    logit_variance: Optional[float] = None
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class ProvenanceEntry(BaseModel):
    citation_id: str
    content: str
    score: float
    tags: List[str] = Field(default_factory=list)


class ProvenanceBinding(BaseModel):
    answer: str
    provenance: List[ProvenanceEntry] = Field(default_factory=list)


__all__ = [
    "ConfidenceLevel",
    "VerificationThresholds",
    "VerificationResult",
    "ProvenanceEntry",
    "ProvenanceBinding",
]
