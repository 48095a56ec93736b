from dataclasses import dataclass
from typing import Optional

import pytest

from aimcore.runtime.memory import MemoryRecord
from aimcore.runtime.verification import VerificationFramework, VerificationThresholds


@dataclass
class FakeChain:
    confidence: float
    provenance_coverage: float
    semantic_entropy: Optional[float] = None


@dataclass
class Quote:
    quote: Optional[str]


def test_provenance_coverage_ratio_and_cap():
    vf = VerificationFramework()
    assert vf.calculate_provenance_coverage("abcdefghij", [Quote("abcde")]) == pytest.approx(0.5)
    assert vf.calculate_provenance_coverage("abc", [{"quote": "abcdef"}]) == 1.0
    assert vf.calculate_provenance_coverage("", [Quote("abc")]) == 0.0
    assert vf.calculate_provenance_coverage("answer", []) == 0.0


def test_provenance_coverage_ignores_missing_quotes():
    vf = VerificationFramework()
    assert vf.calculate_provenance_coverage("abcd", [{"quote": None}, Quote(None)]) == 0.0
    assert vf.calculate_provenance_coverage("abcdefgh", [{"quote": None}, Quote("abcd")]) == pytest.approx(0.5)
    assert vf.calculate_provenance_coverage("abcd", [{"citation_id": "c1"}]) == 0.0


def test_semantic_entropy_over_exact_match_clusters():
    vf = VerificationFramework()
    assert vf.calculate_semantic_entropy(["only one"]) == 0.0
    assert vf.calculate_semantic_entropy(["same", "Same ", "same"]) == 0.0
    assert vf.calculate_semantic_entropy(["a", "A", "b", "b"]) == pytest.approx(1.0)
    assert vf.calculate_semantic_entropy(["a", "b", "c", "d"]) == pytest.approx(2.0)


def test_logit_variance():
    vf = VerificationFramework()
    assert vf.calculate_logit_variance([]) == 0.0
    assert vf.calculate_logit_variance([[0.0, 0.0], [2.0, 2.0]]) == pytest.approx(1.0)
    with pytest.raises(ValueError):
        vf.calculate_logit_variance([[0.1], [0.1, 0.2]])


@pytest.mark.parametrize(
    "confidence, entropy, level",
    [
        (0.95, None, "high"),
        (0.80, None, "high"),
        (0.79, None, "medium"),
        (0.60, 1.0, "medium"),
        (0.59, None, "low"),
        (0.99, 2.5, "abstain"),
    ],
)
def test_confidence_levels(confidence, entropy, level):
    assert VerificationFramework().confidence_level(confidence, entropy) == level


def test_verify_chain_passes_when_all_gates_hold():
    result = VerificationFramework().verify_chain(FakeChain(confidence=0.9, provenance_coverage=0.92))
    assert result.passed is True
    assert result.issues == []
    assert result.calibration_score == pytest.approx(0.02)


def test_verify_chain_collects_every_failed_check():
    result = VerificationFramework().verify_chain(
        FakeChain(confidence=0.5, provenance_coverage=0.1, semantic_entropy=3.0)
    )
    assert result.passed is False
    assert result.confidence_level == "abstain"
    assert any("Provenance coverage" in i for i in result.issues)
    assert any("semantic entropy" in i for i in result.issues)
    assert any("Poor calibration" in i for i in result.issues)
    assert len(result.recommendations) == len(result.issues)


def test_poor_calibration_alone_fails():
    result = VerificationFramework().verify_chain(FakeChain(confidence=0.7, provenance_coverage=0.95))
    assert result.passed is False
    assert result.issues == ["Poor calibration (ECE: 0.250, target: <0.1)"]


@pytest.mark.parametrize("confidence", [0.0, 0.5, 0.85, 1.0])
@pytest.mark.parametrize("kappa", [0.0, 0.84, 0.85, 1.0])
@pytest.mark.parametrize("entropy", [None, 0.5, 2.5])
def test_passed_implies_every_gate(confidence, kappa, entropy):
    vf = VerificationFramework()
    result = vf.verify_chain(FakeChain(confidence, kappa, entropy))
    if result.passed:
        assert result.provenance_coverage >= 0.85
        assert result.confidence_level != "abstain"
        assert result.calibration_score <= 0.10


def test_custom_thresholds():
    vf = VerificationFramework(VerificationThresholds(min_provenance=0.5, max_calibration_error=0.5))
    assert vf.verify_chain(FakeChain(confidence=0.7, provenance_coverage=0.6)).passed is True


def test_should_abstain():
    vf = VerificationFramework()
    assert vf.should_abstain(0.5) is True
    assert vf.should_abstain(0.9) is False
    assert vf.should_abstain(0.9, semantic_entropy=2.1) is True
    assert vf.should_abstain(0.9, provenance_coverage=0.2) is True
    assert vf.should_abstain(0.9, semantic_entropy=0.0, provenance_coverage=0.9) is False


def test_bind_provenance():
    source = MemoryRecord(content="Water boils at 100C at sea level.", tags=["physics"], retrieval_score=0.3)
    binding = VerificationFramework().bind_provenance("It boils at 100C.", [source])
    assert binding.answer == "It boils at 100C."
    entry = binding.provenance[0]
    assert entry.citation_id == source.content_hash
    assert entry.score == pytest.approx(0.3)
    assert entry.tags == ["physics"]
