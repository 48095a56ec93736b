"""
Memory Models - Type-safe records for the ranked memory store

WHAT: Pydantic models for memory records, tag graph nodes, queries and stats
WHERE: aimcore/runtime/memory/models.py - data layer
WHO: MemoryStore and repositories creating/validating memory instances
TIME: Model validation <1ms

All records carry:
- Timestamp handling (ISO 8601 in documents, aware datetimes in Python)
- Content hashing for deduplication
- Score components (QS, IDS, DD) and the derived retrieval score RS
- Compression bookkeeping (head/tail spans, ratio, original token count)

Boundary Notes:
- Models enforce schema consistency before anything reaches the store
- Hash-based deduplication keeps one record per distinct content
- Documents use ``_key`` as identifier so they map onto document stores
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

MemoryTier = Literal["short", "medium", "large", "super_index"]

TIERS: tuple[MemoryTier, ...] = ("short", "medium", "large", "super_index")


def generate_content_hash(content: str) -> str:
    """Generate SHA-256 hash of content for deduplication."""
    return f"sha256:{hashlib.sha256(content.encode('utf-8')).hexdigest()}"


def generate_timestamp_key(prefix: str) -> str:
    """Generate timestamp-based key with UUID suffix."""
    now = datetime.now(timezone.utc)
    ts = now.isoformat().replace("+00:00", "Z").replace(":", "-")
    suffix = str(uuid.uuid4())[:8]
    return f"{prefix}_{ts}_{suffix}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _unique(values: List[str]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.add(value)
            out.append(value)
    return out


class MemoryRecord(BaseModel):
    """
    A unit of stored knowledge with its ranking components.

    ``retrieval_score`` is stored as QS × IDS × (1 − DD); the value handed
    back by retrieval is the decay-adjusted copy, never written back.
    """

    id: str = Field(default_factory=lambda: generate_timestamp_key("mem"))
    content: str = Field(min_length=1)
    content_hash: str = Field(default="")
    token_count: int = Field(ge=0, default=0)
    tier: MemoryTier = "short"

    quality_score: float = Field(ge=0.0, le=1.0, default=0.0)
    index_depth_score: float = Field(ge=0.0, le=1.0, default=0.0)
    dependency_delta: float = Field(ge=0.0, le=1.0, default=0.0)
    retrieval_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    tags: List[str] = Field(default_factory=list)
    parent_tags: List[str] = Field(default_factory=list)
    importance: float = Field(ge=0.0, le=1.0, default=0.5)
    access_count: int = Field(ge=0, default=0)
    last_accessed_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    is_compressed: bool = False
    compression_ratio: Optional[float] = None
    original_token_count: Optional[int] = None
    head_span: Optional[int] = None
    tail_span: Optional[int] = None

    source: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None

    @field_validator("tags", "parent_tags")
    @classmethod
    def _dedupe_tags(cls, value: List[str]) -> List[str]:
        return _unique(value)

    def model_post_init(self, __context: Any) -> None:
        """Auto-generate the content hash when not supplied."""
        if not self.content_hash:
            self.content_hash = generate_content_hash(self.content)

    def to_document(self) -> Dict[str, Any]:
        """Convert to document-store format."""
        doc = self.model_dump(mode="json", exclude={"id"})
        doc["_key"] = self.id
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> MemoryRecord:
        """Create instance from a document-store row."""
        payload = {k: v for k, v in doc.items() if not k.startswith("_")}
        payload["id"] = doc["_key"]
        for field in ("last_accessed_at", "created_at", "updated_at"):
            if isinstance(payload.get(field), str):
                payload[field] = _parse_ts(payload[field])
        return cls(**payload)


class TagNode(BaseModel):
    """Node of the tag graph; created lazily the first time a tag is used."""

    tag: str = Field(min_length=1)
    parent_tag: Optional[str] = None
    priority: float = Field(ge=0.0, le=1.0, default=0.5)
    access_count: int = Field(ge=0, default=0)
    last_accessed_at: datetime = Field(default_factory=utcnow)
    decay_tau: float = Field(gt=0.0, le=1.0, default=0.95)
    created_at: datetime = Field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(mode="json")
        doc["_key"] = hashlib.sha1(self.tag.encode("utf-8")).hexdigest()
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> TagNode:
        payload = {k: v for k, v in doc.items() if not k.startswith("_")}
        for field in ("last_accessed_at", "created_at"):
            if isinstance(payload.get(field), str):
                payload[field] = _parse_ts(payload[field])
        return cls(**payload)


class RetrievalQuery(BaseModel):
    """Filters for ``MemoryStore.retrieve_memories``; all are optional."""

    query: str = ""
    tags: Optional[List[str]] = None
    tier: Optional[MemoryTier] = None
    min_score: float = Field(ge=0.0, le=1.0, default=0.0)
    limit: int = Field(ge=1, default=10)
    session_id: Optional[str] = None
    record_access: bool = True


class StoreResult(BaseModel):
    """Outcome of ``store_memory``: a new record, or the duplicate signal."""

    record: Optional[MemoryRecord] = None
    duplicate: bool = False
    existing_id: Optional[str] = None


class MemoryStats(BaseModel):
    total: int = 0
    count_by_tier: Dict[str, int] = Field(default_factory=dict)
    average_retrieval_score: float = 0.0
    compressed_count: int = 0


class MemoryHierarchy(BaseModel):
    """Tier buckets: L1 short, L2 medium, L3 large."""

    L1: List[MemoryRecord] = Field(default_factory=list)
    L2: List[MemoryRecord] = Field(default_factory=list)
    L3: List[MemoryRecord] = Field(default_factory=list)


__all__ = [
    "MemoryTier",
    "TIERS",
    "MemoryRecord",
    "TagNode",
    "RetrievalQuery",
    "StoreResult",
    "MemoryStats",
    "MemoryHierarchy",
    "generate_content_hash",
    "generate_timestamp_key",
    "utcnow",
]
