"""
Verification Framework - stateless accept/abstain evaluator

WHAT: Provenance coverage, semantic entropy, calibration and abstain gating
WHERE: aimcore/runtime/verification/ - depends on chain outputs only
WHO: VERIFY node of the orchestration engine; ad hoc audits
TIME: Pure computation, no I/O
"""

from .framework import ChainMetrics, VerificationFramework, cluster_completions  # noqa: F401
from .models import (  # noqa: F401
    ConfidenceLevel,
    ProvenanceBinding,
    ProvenanceEntry,
    VerificationResult,
    VerificationThresholds,
)

__all__ = [
    "ChainMetrics",
    "ConfidenceLevel",
    "ProvenanceBinding",
    "ProvenanceEntry",
    "VerificationFramework",
    "VerificationResult",
    "VerificationThresholds",
    "cluster_completions",
]
