"""
Ranked Memory Store - Tiering, RS scoring, decay & Dumbbell compression

WHAT: Local library owning memory records and the tag graph
WHERE: aimcore/runtime/memory/ - leaf subsystem of the runtime
WHO: The orchestration engine and any caller needing ranked recall
TIME: One repository round trip per touched record

Memory tiers (by token count):
- short: ≤200 tokens
- medium: ≤800 tokens
- large: ≤8000 tokens
- super_index: >8000 tokens (externally indexed)

Operations:
- store_memory(content, tags, importance, source, ...): dedup-on-write ingest
- retrieve_memories(query): RS ranking with temporal decay
- compress_memory(id): irreversible head/tail-preserving compression
- build_hierarchy(): L1/L2/L3 tier buckets
- get_stats(): aggregate counts

Boundary Notes:
- No dependency on orchestration or verification
- Persistence is pluggable through MemoryRepository
"""

from .compression import CompressionPlan, DumbbellConfig, plan_compression  # noqa: F401
from .memory_store import HIERARCHY_LIMITS, MemoryStore  # noqa: F401
from .models import (  # noqa: F401
    MemoryHierarchy,
    MemoryRecord,
    MemoryStats,
    MemoryTier,
    RetrievalQuery,
    StoreResult,
    TagNode,
    generate_content_hash,
)
from .repository import (  # noqa: F401
    ArangoMemoryRepository,
    DuplicateContentError,
    InMemoryMemoryRepository,
    MemoryRepository,
    MemoryStoreError,
)
from .tokens import CharTokenCounter, TokenCounter  # noqa: F401

__all__ = [
    "ArangoMemoryRepository",
    "CharTokenCounter",
    "CompressionPlan",
    "DumbbellConfig",
    "DuplicateContentError",
    "HIERARCHY_LIMITS",
    "InMemoryMemoryRepository",
    "MemoryHierarchy",
    "MemoryRecord",
    "MemoryRepository",
    "MemoryStats",
    "MemoryStore",
    "MemoryStoreError",
    "MemoryTier",
    "RetrievalQuery",
    "StoreResult",
    "TagNode",
    "TokenCounter",
    "generate_content_hash",
    "plan_compression",
]
