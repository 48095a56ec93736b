import math
from datetime import datetime, timedelta, timezone

import pytest

from aimcore.runtime.memory.scoring import (
    apply_temporal_decay,
    completeness_score,
    density_score,
    determine_tier,
    index_depth_score,
    quality_score,
    relevance_score,
    retrieval_score,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "tokens, tier",
    [
        (0, "short"),
        (200, "short"),
        (201, "medium"),
        (800, "medium"),
        (801, "large"),
        (8000, "large"),
        (8001, "super_index"),
    ],
)
def test_tier_boundaries_inclusive_at_lower_tier(tokens, tier):
    assert determine_tier(tokens) == tier


@pytest.mark.parametrize("qs", [0.0, 0.3, 1.0])
@pytest.mark.parametrize("ids", [0.0, 0.5, 1.0])
@pytest.mark.parametrize("dd", [0.0, 0.7, 1.0])
def test_retrieval_score_bounded(qs, ids, dd):
    rs = retrieval_score(qs, ids, dd)
    assert 0.0 <= rs <= 1.0
    assert rs == pytest.approx(qs * ids * (1 - dd))


def test_index_depth_score_capped_and_zero_without_tags():
    assert index_depth_score([]) == 0.0
    assert index_depth_score([f"t{i}" for i in range(20)]) == 1.0
    assert index_depth_score(["a", "b", "c"]) == pytest.approx(math.log10(4))


def test_completeness_components():
    assert completeness_score("short note") == pytest.approx(0.3)
    long_text = "First point here. Second point follows.\n- bullet item " + "x" * 100
    assert completeness_score(long_text) == pytest.approx(1.0)


def test_density_and_relevance():
    assert density_score("") == 0.0
    assert density_score("a a b b") == pytest.approx(0.5)
    assert relevance_score(["one"]) == pytest.approx(0.2)
    assert relevance_score([str(i) for i in range(9)]) == 1.0


def test_fifty_token_single_tag_memory_scores():
    content = "x" * 200
    # completeness 0.5 (long, one sentence), density 1.0, relevance 0.2
    qs = quality_score(content, ["topic"])
    assert qs == pytest.approx(0.4 * 0.5 + 0.3 * 1.0 + 0.3 * 0.2)
    ids = index_depth_score(["topic"])
    assert ids == pytest.approx(math.log10(2) / 3)
    assert retrieval_score(qs, ids, 0.0) == pytest.approx(0.56 * math.log10(2) / 3)


def test_decay_identity_at_zero_hours():
    assert apply_temporal_decay(0.8, T0, T0) == pytest.approx(0.8)


def test_decay_non_increasing_in_elapsed_time():
    scores = [apply_temporal_decay(0.8, T0, T0 + timedelta(hours=h), 0.95) for h in (0, 1, 5, 24, 240)]
    assert all(a >= b for a, b in zip(scores, scores[1:]))
    assert scores[2] == pytest.approx(0.8 * 0.95**5)


def test_decay_ignores_future_access_and_missing_scores():
    assert apply_temporal_decay(0.5, T0 + timedelta(hours=3), T0) == pytest.approx(0.5)
    assert apply_temporal_decay(None, T0, T0 + timedelta(hours=1)) == 0.0
