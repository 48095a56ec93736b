"""
Memory Store - Ranked memory with tiering, decay and Dumbbell compression

WHAT: High-level operations for storing, ranking, compressing and summarizing memories
WHERE: aimcore/runtime/memory/memory_store.py - API layer above the repository
WHO: OrchestrationEngine (RETRIEVE/REFLECT nodes) and ad hoc callers
TIME: Store/retrieve bounded by one repository round trip per record touched

Operations:
- store_memory: dedup-on-write, tier assignment, RS scoring, tag graph upkeep
- retrieve_memories: filtered RS ranking with read-time temporal decay
- compress_memory: irreversible head/tail-preserving compression
- build_hierarchy: read-only tier buckets (L1/L2/L3)
- get_stats: aggregate counts and mean RS

Boundary Notes:
- Safe to share between concurrently running chains
- Updates to a single record are serialized by a per-record lock
- Decay is recomputed from the stored last_accessed_at on every read, never cached
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterable, Iterator, List, Optional

import numpy as np

from ..telemetry import NoOpTelemetryClient, TelemetryClient
from .compression import DumbbellConfig, plan_compression
from .models import (
    MemoryHierarchy,
    MemoryRecord,
    MemoryStats,
    RetrievalQuery,
    TIERS,
    StoreResult,
    TagNode,
    generate_content_hash,
    utcnow,
)
from .repository import DuplicateContentError, InMemoryMemoryRepository, MemoryRepository
from .scoring import (
    DEFAULT_TAU,
    apply_temporal_decay,
    determine_tier,
    index_depth_score,
    quality_score,
    retrieval_score,
)
from .tokens import DEFAULT_TOKEN_COUNTER, TokenCounter

logger = logging.getLogger(__name__)

HIERARCHY_LIMITS = {
    "L1": ("short", 50),
    "L2": ("medium", 100),
    "L3": ("large", 500),
}

DEFAULT_TAG_PRIORITY = 0.5


class MemoryStore:
    """
    Facade owning MemoryRecord and TagNode identity and scoring.

    All persistence goes through ``repository``; pass an
    ``ArangoMemoryRepository`` in production and the in-memory fake in tests.
    """

    def __init__(
        self,
        repository: MemoryRepository | None = None,
        *,
        token_counter: TokenCounter | None = None,
        dumbbell: DumbbellConfig | None = None,
        tau: float = DEFAULT_TAU,
        telemetry: TelemetryClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not 0.0 < tau <= 1.0:
            raise ValueError("tau must be in (0, 1]")
        self._repo = repository or InMemoryMemoryRepository()
        self._tokens = token_counter or DEFAULT_TOKEN_COUNTER
        self._dumbbell = dumbbell or DumbbellConfig()
        self._tau = tau
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._clock = clock or utcnow
        self._write_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._record_locks: Dict[str, threading.Lock] = {}

    @property
    def repository(self) -> MemoryRepository:
        return self._repo

    @property
    def token_counter(self) -> TokenCounter:
        return self._tokens

    @contextmanager
    def _record_lock(self, memory_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._record_locks.setdefault(memory_id, threading.Lock())
        with lock:
            yield

    def _touch(self, memory_id: str, at: datetime) -> Optional[MemoryRecord]:
        with self._record_lock(memory_id):
            return self._repo.record_access(memory_id, at)

    # ============================================================
    # Storage
    # ============================================================

    def store_memory(
        self,
        content: str,
        tags: Iterable[str] | None = None,
        importance: float = 0.5,
        source: Optional[str] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> StoreResult:
        """
        Store a new memory, or bump the existing one when the content is known.

        Returns:
            StoreResult with ``record`` set for a new memory, or
            ``duplicate=True`` and ``existing_id`` for repeated content.
        """
        if not content:
            raise ValueError("content must be non-empty")
        tag_list = list(dict.fromkeys(t.strip() for t in (tags or []) if t and t.strip()))
        now = self._clock()
        content_hash = generate_content_hash(content)

        with self._telemetry.span("memory.store", attributes={"tags": len(tag_list)}) as span:
            with self._write_lock:
                existing = self._repo.find_by_hash(content_hash)
                if existing is not None:
                    self._touch(existing.id, now)
                    span.set_attribute("duplicate", True)
                    logger.debug(f"Duplicate content for memory {existing.id}; access bumped")
                    return StoreResult(duplicate=True, existing_id=existing.id)

                token_count = self._tokens.count(content)
                qs = quality_score(content, tag_list)
                ids = index_depth_score(tag_list)
                dd = 0.0
                record = MemoryRecord(
                    content=content,
                    content_hash=content_hash,
                    token_count=token_count,
                    tier=determine_tier(token_count),
                    quality_score=qs,
                    index_depth_score=ids,
                    dependency_delta=dd,
                    retrieval_score=retrieval_score(qs, ids, dd),
                    tags=tag_list,
                    parent_tags=self.resolve_parent_tags(tag_list),
                    importance=importance,
                    last_accessed_at=now,
                    created_at=now,
                    updated_at=now,
                    source=source,
                    user_id=user_id,
                    session_id=session_id,
                )
                try:
                    self._repo.insert(record)
                except DuplicateContentError as exc:
                    # another writer won the unique index
                    self._touch(exc.existing_id, now)
                    span.set_attribute("duplicate", True)
                    return StoreResult(duplicate=True, existing_id=exc.existing_id)

            self._update_tag_graph(tag_list, now)
            span.set_attribute("tier", record.tier)
            span.set_attribute("duplicate", False)

        logger.info(f"Stored memory {record.id} tier={record.tier} rs={record.retrieval_score:.3f}")
        return StoreResult(record=record)

    def _update_tag_graph(self, tags: List[str], at: datetime) -> None:
        for tag in tags:
            self._repo.upsert_tag(
                TagNode(
                    tag=tag,
                    priority=DEFAULT_TAG_PRIORITY,
                    access_count=1,
                    last_accessed_at=at,
                    decay_tau=DEFAULT_TAU,
                    created_at=at,
                ),
                at,
            )

    def link_tag(self, tag: str, parent_tag: Optional[str]) -> Optional[TagNode]:
        """Attach ``tag`` under ``parent_tag`` in the tag graph (creates both lazily)."""
        now = self._clock()
        self._update_tag_graph([t for t in (tag, parent_tag) if t and self._repo.get_tag(t) is None], now)
        return self._repo.set_parent_tag(tag, parent_tag)

    def resolve_parent_tags(self, tags: Iterable[str]) -> List[str]:
        """Transitive closure of parent links, excluding the tags themselves."""
        own = set(tags)
        parents: List[str] = []
        seen = set(own)
        for tag in own:
            node = self._repo.get_tag(tag)
            while node is not None and node.parent_tag and node.parent_tag not in seen:
                seen.add(node.parent_tag)
                parents.append(node.parent_tag)
                node = self._repo.get_tag(node.parent_tag)
        return sorted(parents)

    # ============================================================
    # Retrieval
    # ============================================================

    def retrieve_memories(self, query: RetrievalQuery | None = None, **filters) -> List[MemoryRecord]:
        """
        Rank memories by retrieval score with read-time temporal decay.

        Args:
            query: RetrievalQuery; keyword ``filters`` build one when omitted

        Raises:
            TypeError: both ``query`` and keyword ``filters`` were given

        Returns:
            At most ``limit`` records ordered by decayed score. Every returned
            record counts as accessed unless ``record_access`` is False.
        """
        if query is not None and filters:
            raise TypeError(f"pass either a RetrievalQuery or keyword filters, not both (got {sorted(filters)})")
        q = query or RetrievalQuery(**filters)
        now = self._clock()
        with self._telemetry.span(
            "memory.retrieve",
            attributes={"tier": q.tier, "tags": len(q.tags or []), "limit": q.limit},
        ) as span:
            candidates = self._repo.query(q)
            results: List[MemoryRecord] = []
            for record in candidates:
                decayed = apply_temporal_decay(record.retrieval_score, record.last_accessed_at, now, self._tau)
                update: Dict[str, object] = {"retrieval_score": decayed}
                if q.record_access:
                    touched = self._touch(record.id, now)
                    if touched is not None:
                        update["access_count"] = touched.access_count
                        update["last_accessed_at"] = touched.last_accessed_at
                results.append(record.model_copy(update=update))
            results.sort(key=lambda r: r.retrieval_score or 0.0, reverse=True)
            span.set_attribute("result_count", len(results))

        if not results and q.query:
            logger.debug(f"No memories matched query: {q.query!r}")
        return results[: q.limit]

    # ============================================================
    # Compression
    # ============================================================

    def compress_memory(self, memory_id: str) -> bool:
        """Dumbbell-compress one memory; False when missing, compressed, or not worthwhile."""
        with self._telemetry.span("memory.compress", attributes={"memory_id": memory_id}) as span:
            with self._record_lock(memory_id):
                record = self._repo.get(memory_id)
                if record is None or record.is_compressed:
                    span.set_attribute("reason", "missing" if record is None else "already_compressed")
                    return False

                tokens = self._tokens.count(record.content)
                plan, reason = plan_compression(record.content, tokens, self._dumbbell)
                span.set_attribute("reason", reason)
                if plan is None:
                    logger.debug(f"Compression rejected for {memory_id}: {reason}")
                    return False

                updated = record.model_copy(
                    update={
                        "content": plan.content,
                        "is_compressed": True,
                        "compression_ratio": plan.ratio,
                        "original_token_count": plan.original_tokens,
                        "head_span": plan.head_span,
                        "tail_span": plan.tail_span,
                        "token_count": plan.compressed_tokens,
                        "tier": determine_tier(plan.compressed_tokens),
                        "updated_at": self._clock(),
                    }
                )
                self._repo.replace(updated)

        logger.info(f"Compressed memory {memory_id}: {plan.original_tokens} -> {plan.compressed_tokens} tokens")
        return True

    # ============================================================
    # Views
    # ============================================================

    def build_hierarchy(self) -> MemoryHierarchy:
        levels = {
            level: self.retrieve_memories(RetrievalQuery(tier=tier, limit=limit, record_access=False))
            for level, (tier, limit) in HIERARCHY_LIMITS.items()
        }
        return MemoryHierarchy(**levels)

    def get_stats(self) -> MemoryStats:
        records = self._repo.list_all()
        if not records:
            return MemoryStats(count_by_tier=dict.fromkeys(TIERS, 0))
        by_tier = Counter(r.tier for r in records)
        scores = np.array([r.retrieval_score or 0.0 for r in records], dtype=float)
        positive = scores[scores > 0]
        return MemoryStats(
            total=len(records),
            count_by_tier={tier: by_tier[tier] for tier in TIERS},
            average_retrieval_score=float(positive.mean()) if positive.size else 0.0,
            compressed_count=sum(1 for r in records if r.is_compressed),
        )


__all__ = ["MemoryStore", "HIERARCHY_LIMITS"]
