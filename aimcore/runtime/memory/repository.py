"""
Memory Repository - Persistence boundary for memory records and tag nodes

WHAT: Repository protocol plus in-memory and document-store implementations
WHERE: aimcore/runtime/memory/repository.py - below MemoryStore
WHO: MemoryStore (sole writer of MemoryRecord/TagNode identity)
TIME: In-memory O(n) scans; document store bounded by indexed queries

The store never caches records itself; every read goes through one of these
repositories, so there is a single source of truth.

Collections:
- memories (document): memory records, unique index on content_hash
- tag_graph (document): one node per distinct tag, unique index on tag

Boundary Notes:
- ``record_access`` must be atomic per record (server-side increment)
- ``query`` returns records ordered by retrieval_score desc, nulls last
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from ...database.document_client import CollectionDefinition, DocumentClient
from .models import MemoryRecord, RetrievalQuery, TagNode

logger = logging.getLogger(__name__)


class MemoryStoreError(RuntimeError):
    """Base class for persistence failures in the memory layer."""


class DuplicateContentError(MemoryStoreError):
    """Raised when a record with the same content hash already exists."""

    def __init__(self, content_hash: str, existing_id: str) -> None:
        super().__init__(f"Duplicate content {content_hash} (existing {existing_id})")
        self.content_hash = content_hash
        self.existing_id = existing_id


class MemoryRepository(Protocol):
    """Abstract interface for memory persistence."""

    def ensure_schema(self) -> None:
        """Create required collections and indexes if missing (idempotent)."""

    def get(self, memory_id: str) -> Optional[MemoryRecord]:
        ...

    def find_by_hash(self, content_hash: str) -> Optional[MemoryRecord]:
        ...

    def insert(self, record: MemoryRecord) -> MemoryRecord:
        """Persist a new record; raises DuplicateContentError on hash collision."""

    def replace(self, record: MemoryRecord) -> None:
        ...

    def record_access(self, memory_id: str, at: datetime) -> Optional[MemoryRecord]:
        """Atomically increment access_count and set last_accessed_at."""

    def query(self, query: RetrievalQuery) -> List[MemoryRecord]:
        ...

    def list_all(self) -> List[MemoryRecord]:
        ...

    def get_tag(self, tag: str) -> Optional[TagNode]:
        ...

    def upsert_tag(self, node: TagNode, at: datetime) -> TagNode:
        """Insert ``node`` if the tag is new, else bump its access stats."""

    def set_parent_tag(self, tag: str, parent_tag: Optional[str]) -> Optional[TagNode]:
        ...


def _sort_key(record: MemoryRecord) -> tuple[int, float]:
    # nulls last, then score descending
    if record.retrieval_score is None:
        return (1, 0.0)
    return (0, -record.retrieval_score)


class InMemoryMemoryRepository(MemoryRepository):
    """Thread-safe dictionary-backed repository for tests and single-process use."""

    def __init__(self) -> None:
        self._records: Dict[str, MemoryRecord] = {}
        self._by_hash: Dict[str, str] = {}
        self._tags: Dict[str, TagNode] = {}
        self._lock = threading.RLock()

    def ensure_schema(self) -> None:
        return None

    def get(self, memory_id: str) -> Optional[MemoryRecord]:
        with self._lock:
            record = self._records.get(memory_id)
            return record.model_copy(deep=True) if record else None

    def find_by_hash(self, content_hash: str) -> Optional[MemoryRecord]:
        with self._lock:
            key = self._by_hash.get(content_hash)
            return self.get(key) if key else None

    def insert(self, record: MemoryRecord) -> MemoryRecord:
        with self._lock:
            existing = self._by_hash.get(record.content_hash)
            if existing is not None:
                raise DuplicateContentError(record.content_hash, existing)
            self._records[record.id] = record.model_copy(deep=True)
            self._by_hash[record.content_hash] = record.id
            return record

    def replace(self, record: MemoryRecord) -> None:
        with self._lock:
            if record.id not in self._records:
                raise MemoryStoreError(f"Unknown memory {record.id}")
            self._records[record.id] = record.model_copy(deep=True)

    def record_access(self, memory_id: str, at: datetime) -> Optional[MemoryRecord]:
        with self._lock:
            record = self._records.get(memory_id)
            if record is None:
                return None
            record.access_count += 1
            record.last_accessed_at = at
            return record.model_copy(deep=True)

    def query(self, query: RetrievalQuery) -> List[MemoryRecord]:
        wanted = set(query.tags or [])
        with self._lock:
            rows = []
            for record in self._records.values():
                if query.tier and record.tier != query.tier:
                    continue
                if wanted and not wanted.intersection(record.tags):
                    continue
                if query.session_id and record.session_id != query.session_id:
                    continue
                if query.min_score > 0 and (record.retrieval_score or 0.0) < query.min_score:
                    continue
                rows.append(record.model_copy(deep=True))
        rows.sort(key=_sort_key)
        return rows[: query.limit]

    def list_all(self) -> List[MemoryRecord]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records.values()]

    def get_tag(self, tag: str) -> Optional[TagNode]:
        with self._lock:
            node = self._tags.get(tag)
            return node.model_copy() if node else None

    def upsert_tag(self, node: TagNode, at: datetime) -> TagNode:
        with self._lock:
            existing = self._tags.get(node.tag)
            if existing is None:
                self._tags[node.tag] = node.model_copy()
                return node
            existing.access_count += 1
            existing.last_accessed_at = at
            return existing.model_copy()

    def set_parent_tag(self, tag: str, parent_tag: Optional[str]) -> Optional[TagNode]:
        with self._lock:
            node = self._tags.get(tag)
            if node is None:
                return None
            node.parent_tag = parent_tag
            return node.model_copy()


@dataclass(slots=True)
class ArangoMemoryRepository(MemoryRepository):
    """Document-store implementation using parameterized AQL."""

    client: DocumentClient

    MEMORIES: str = "memories"
    TAG_GRAPH: str = "tag_graph"

    def close(self) -> None:
        self.client.close()

    # ------------------ schema ------------------
    def ensure_schema(self) -> None:
        definitions = [
            CollectionDefinition(
                name=self.MEMORIES,
                type="document",
                indexes=[
                    {"type": "persistent", "fields": ["content_hash"], "unique": True, "sparse": False},
                    {"type": "persistent", "fields": ["retrieval_score"], "unique": False},
                    {"type": "persistent", "fields": ["tier"], "unique": False},
                    {"type": "persistent", "fields": ["tags[*]"], "unique": False},
                    {"type": "persistent", "fields": ["session_id"], "unique": False, "sparse": True},
                ],
            ),
            CollectionDefinition(
                name=self.TAG_GRAPH,
                type="document",
                indexes=[
                    {"type": "persistent", "fields": ["tag"], "unique": True, "sparse": False},
                ],
            ),
        ]
        self.client.create_collections(definitions)
        logger.info("Memory schema ensured")

    # ------------------ records -----------------
    def get(self, memory_id: str) -> Optional[MemoryRecord]:
        doc = self.client.get_document(self.MEMORIES, memory_id)
        return MemoryRecord.from_document(doc) if doc else None

    def find_by_hash(self, content_hash: str) -> Optional[MemoryRecord]:
        aql = (
            f"FOR m IN {self.MEMORIES} "
            "FILTER m.content_hash == @hash "
            "LIMIT 1 "
            "RETURN m"
        )
        rows = self.client.execute_query(aql, {"hash": content_hash})
        return MemoryRecord.from_document(rows[0]) if rows else None

    def insert(self, record: MemoryRecord) -> MemoryRecord:
        existing = self.find_by_hash(record.content_hash)
        if existing is not None:
            raise DuplicateContentError(record.content_hash, existing.id)
        self.client.insert_document(self.MEMORIES, record.to_document())
        return record

    def replace(self, record: MemoryRecord) -> None:
        self.client.update_document(self.MEMORIES, record.id, record.to_document())

    def record_access(self, memory_id: str, at: datetime) -> Optional[MemoryRecord]:
        aql = (
            f"FOR m IN {self.MEMORIES} "
            "FILTER m._key == @key "
            "UPDATE m WITH { access_count: m.access_count + 1, last_accessed_at: @now } "
            f"IN {self.MEMORIES} "
            "RETURN NEW"
        )
        rows = self.client.execute_query(aql, {"key": memory_id, "now": at.isoformat()})
        return MemoryRecord.from_document(rows[0]) if rows else None

    def query(self, query: RetrievalQuery) -> List[MemoryRecord]:
        filters: List[str] = []
        bind_vars: Dict[str, object] = {"limit": query.limit}
        if query.tier:
            filters.append("FILTER m.tier == @tier")
            bind_vars["tier"] = query.tier
        if query.tags:
            filters.append("FILTER LENGTH(INTERSECTION(m.tags, @tags)) > 0")
            bind_vars["tags"] = list(query.tags)
        if query.session_id:
            filters.append("FILTER m.session_id == @sid")
            bind_vars["sid"] = query.session_id
        if query.min_score > 0:
            filters.append("FILTER m.retrieval_score >= @min_score")
            bind_vars["min_score"] = query.min_score

        aql = " ".join(
            [f"FOR m IN {self.MEMORIES}", *filters, "SORT m.retrieval_score DESC", "LIMIT @limit", "RETURN m"]
        )
        rows = self.client.execute_query(aql, bind_vars)
        return [MemoryRecord.from_document(doc) for doc in rows]

    def list_all(self) -> List[MemoryRecord]:
        rows = self.client.execute_query(f"FOR m IN {self.MEMORIES} RETURN m", {})
        return [MemoryRecord.from_document(doc) for doc in rows]

    # ------------------ tags --------------------
    def get_tag(self, tag: str) -> Optional[TagNode]:
        aql = f"FOR t IN {self.TAG_GRAPH} FILTER t.tag == @tag LIMIT 1 RETURN t"
        rows = self.client.execute_query(aql, {"tag": tag})
        return TagNode.from_document(rows[0]) if rows else None

    def upsert_tag(self, node: TagNode, at: datetime) -> TagNode:
        aql = (
            "UPSERT { tag: @tag } "
            "INSERT @doc "
            "UPDATE { access_count: OLD.access_count + 1, last_accessed_at: @now } "
            f"IN {self.TAG_GRAPH} "
            "RETURN NEW"
        )
        rows = self.client.execute_query(aql, {"tag": node.tag, "doc": node.to_document(), "now": at.isoformat()})
        return TagNode.from_document(rows[0]) if rows else node

    def set_parent_tag(self, tag: str, parent_tag: Optional[str]) -> Optional[TagNode]:
        aql = (
            f"FOR t IN {self.TAG_GRAPH} "
            "FILTER t.tag == @tag "
            f"UPDATE t WITH {{ parent_tag: @parent }} IN {self.TAG_GRAPH} "
            "RETURN NEW"
        )
        rows = self.client.execute_query(aql, {"tag": tag, "parent": parent_tag})
        return TagNode.from_document(rows[0]) if rows else None


__all__ = [
    "MemoryStoreError",
    "DuplicateContentError",
    "MemoryRepository",
    "InMemoryMemoryRepository",
    "ArangoMemoryRepository",
]
