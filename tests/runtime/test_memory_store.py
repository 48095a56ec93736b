from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from aimcore.runtime.memory import (
    DumbbellConfig,
    InMemoryMemoryRepository,
    MemoryStore,
    RetrievalQuery,
)
from aimcore.runtime.memory.scoring import index_depth_score, quality_score, retrieval_score
from aimcore.runtime.telemetry import TelemetryClient

T0 = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


class CaptureTelemetryClient(TelemetryClient):
    def __init__(self) -> None:
        self.spans: list[tuple[str, dict]] = []

    def emit_span(self, name: str, attributes: dict) -> None:
        self.spans.append((name, attributes))


def make_store(clock=None, **kwargs):
    repo = InMemoryMemoryRepository()
    return MemoryStore(repo, clock=clock or FakeClock(T0), **kwargs), repo


def test_store_memory_assigns_tier_and_score():
    store, _ = make_store()
    content = "x" * 200
    result = store.store_memory(content, tags=["topic"], importance=0.5, source="test")

    record = result.record
    assert result.duplicate is False
    assert record.token_count == 50
    assert record.tier == "short"
    expected = retrieval_score(quality_score(content, ["topic"]), index_depth_score(["topic"]), 0.0)
    assert record.retrieval_score == pytest.approx(expected)
    assert record.content_hash.startswith("sha256:")


def test_store_rejects_empty_content():
    store, _ = make_store()
    with pytest.raises(ValueError):
        store.store_memory("", tags=["a"])


def test_duplicate_content_bumps_access_instead_of_inserting():
    store, repo = make_store()
    first = store.store_memory("Same fact twice.", tags=["fact"])
    second = store.store_memory("Same fact twice.", tags=["fact"])

    assert second.duplicate is True
    assert second.record is None
    assert second.existing_id == first.record.id
    rows = repo.list_all()
    assert len(rows) == 1
    assert rows[0].access_count == 1


def test_concurrent_duplicate_stores_keep_one_record():
    store, repo = make_store()
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: store.store_memory("racing content", tags=["race"]), range(16)))

    assert len(repo.list_all()) == 1
    assert sum(1 for r in results if not r.duplicate) == 1
    assert repo.list_all()[0].access_count == 15


def test_concurrent_retrievals_keep_every_access():
    store, repo = make_store()
    record = store.store_memory("Shared note read by many workers.", tags=["shared"]).record

    def read_many(_):
        for _ in range(50):
            assert len(store.retrieve_memories(tags=["shared"])) == 1

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(read_many, range(8)))

    assert repo.get(record.id).access_count == 400


def test_compression_during_concurrent_retrievals_keeps_accesses():
    store, repo = make_store(dumbbell=DumbbellConfig(head_tail_min=0.05))
    record = store.store_memory("word " * 6400, tags=["long"]).record

    def read_many(_):
        for _ in range(25):
            store.retrieve_memories(tags=["long"])

    with ThreadPoolExecutor(max_workers=8) as pool:
        readers = [pool.submit(read_many, i) for i in range(6)]
        compressions = [pool.submit(store.compress_memory, record.id) for _ in range(4)]
        for future in readers:
            future.result()
        outcomes = [future.result() for future in compressions]

    after = repo.get(record.id)
    assert outcomes.count(True) == 1
    assert after.is_compressed is True
    assert after.original_token_count == 8000
    assert after.access_count == 150


def test_retrieve_rejects_query_with_keyword_filters():
    store, _ = make_store()
    store.store_memory("Tagged note.", tags=["alpha"])
    with pytest.raises(TypeError):
        store.retrieve_memories(RetrievalQuery(tags=["alpha"]), tags=["beta"])


def test_retrieve_orders_by_score_and_bumps_access():
    store, repo = make_store()
    low = store.store_memory("A note with a single tag only.", tags=["alpha"]).record
    high = store.store_memory("A richer note. It carries three tags.", tags=["alpha", "beta", "gamma"]).record

    results = store.retrieve_memories(tags=["alpha"])

    assert [r.id for r in results] == [high.id, low.id]
    assert all(r.access_count == 1 for r in results)
    assert repo.get(low.id).access_count == 1


def test_retrieve_without_recording_access():
    store, repo = make_store()
    record = store.store_memory("Quiet read.", tags=["quiet"]).record
    store.retrieve_memories(RetrievalQuery(tags=["quiet"], record_access=False))
    assert repo.get(record.id).access_count == 0


def test_retrieve_applies_decay_from_last_access():
    clock = FakeClock(T0)
    store, _ = make_store(clock)
    record = store.store_memory("Decaying knowledge.", tags=["decay"]).record

    clock.advance(hours=10)
    decayed = store.retrieve_memories(tags=["decay"])[0]
    assert decayed.retrieval_score == pytest.approx(record.retrieval_score * 0.95**10)

    # the access above reset last_accessed_at to now
    fresh = store.retrieve_memories(tags=["decay"])[0]
    assert fresh.retrieval_score == pytest.approx(record.retrieval_score)


def test_retrieve_respects_limit_tier_and_session():
    store, _ = make_store()
    for i in range(5):
        store.store_memory(f"Session note {i}.", tags=["note"], session_id="s1")
    store.store_memory("Other session.", tags=["note"], session_id="s2")
    store.store_memory("y" * 1000, tags=["note"], session_id="s1")

    assert len(store.retrieve_memories(tags=["note"], limit=3)) == 3
    assert all(r.session_id == "s1" for r in store.retrieve_memories(tags=["note"], session_id="s1", limit=20))
    assert [r.tier for r in store.retrieve_memories(tier="medium")] == ["medium"]


def test_tag_graph_tracks_usage_and_parents():
    store, repo = make_store()
    store.link_tag("programming", "computing")
    store.link_tag("python", "programming")

    record = store.store_memory("Python uses indentation.", tags=["python"]).record
    store.store_memory("Python has generators.", tags=["python"])

    assert record.parent_tags == ["computing", "programming"]
    # created by link_tag, then bumped by each store
    assert repo.get_tag("python").access_count == 3
    assert repo.get_tag("python").priority == 0.5


def test_build_hierarchy_is_read_only():
    store, repo = make_store()
    short = store.store_memory("tiny", tags=["a"]).record
    medium = store.store_memory("m" * 2000, tags=["a"]).record
    large = store.store_memory("l" * 8000, tags=["a"]).record

    hierarchy = store.build_hierarchy()

    assert [r.id for r in hierarchy.L1] == [short.id]
    assert [r.id for r in hierarchy.L2] == [medium.id]
    assert [r.id for r in hierarchy.L3] == [large.id]
    assert all(r.access_count == 0 for r in repo.list_all())


def test_get_stats_averages_positive_scores():
    store, _ = make_store()
    empty = store.get_stats()
    assert empty.total == 0
    assert empty.count_by_tier == {"short": 0, "medium": 0, "large": 0, "super_index": 0}

    tagged = store.store_memory("Scored memory.", tags=["x"]).record
    store.store_memory("Untagged memory scores zero.")

    stats = store.get_stats()
    assert stats.total == 2
    assert stats.count_by_tier == {"short": 2, "medium": 0, "large": 0, "super_index": 0}
    assert stats.average_retrieval_score == pytest.approx(tagged.retrieval_score)
    assert stats.compressed_count == 0


def test_store_and_retrieve_emit_spans():
    telemetry = CaptureTelemetryClient()
    store, _ = make_store(telemetry=telemetry)
    store.store_memory("Observed.", tags=["obs"])
    store.retrieve_memories(tags=["obs"])

    names = [name for name, _ in telemetry.spans]
    assert names == ["memory.store", "memory.retrieve"]
    assert telemetry.spans[0][1]["success"] is True
    assert telemetry.spans[1][1]["result_count"] == 1


def test_invalid_tau_rejected():
    with pytest.raises(ValueError):
        MemoryStore(tau=0.0)
    with pytest.raises(ValueError):
        MemoryStore(tau=1.5)
