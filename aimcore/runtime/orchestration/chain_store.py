"""
Chain Store - Persistence for terminal reasoning chains

WHAT: Repository protocol for ReasoningChain records with two implementations
WHERE: aimcore/runtime/orchestration/chain_store.py - below the engine
WHO: OrchestrationEngine persisting each chain exactly once
TIME: One write per chain

Collections:
- reasoning_chains (document): keyed by trace_id, indexed by status/created_at

Boundary Notes:
- Partial chains (failed/cancelled) are stored with their status so readers
  can tell them apart from completed runs
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from ...database.document_client import CollectionDefinition, DocumentClient
from .models import ReasoningChain

logger = logging.getLogger(__name__)


class ChainRepository(Protocol):
    def ensure_schema(self) -> None:
        """Create required collections and indexes if missing (idempotent)."""

    def save_chain(self, chain: ReasoningChain) -> str:
        """Persist a terminal chain; returns its trace id."""

    def get_chain(self, trace_id: str) -> Optional[ReasoningChain]:
        ...


class InMemoryChainRepository(ChainRepository):
    def __init__(self) -> None:
        self._chains: Dict[str, ReasoningChain] = {}
        self._lock = threading.Lock()

    def ensure_schema(self) -> None:
        return None

    def save_chain(self, chain: ReasoningChain) -> str:
        with self._lock:
            self._chains[chain.trace_id] = chain.model_copy(deep=True)
        return chain.trace_id

    def get_chain(self, trace_id: str) -> Optional[ReasoningChain]:
        with self._lock:
            chain = self._chains.get(trace_id)
            return chain.model_copy(deep=True) if chain else None

    def list_chains(self) -> List[ReasoningChain]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._chains.values()]


@dataclass(slots=True)
class ArangoChainRepository(ChainRepository):
    client: DocumentClient

    CHAINS: str = "reasoning_chains"

    def ensure_schema(self) -> None:
        self.client.create_collections(
            [
                CollectionDefinition(
                    name=self.CHAINS,
                    type="document",
                    indexes=[
                        {"type": "persistent", "fields": ["status"], "unique": False},
                        {"type": "persistent", "fields": ["created_at"], "unique": False},
                    ],
                )
            ]
        )

    def save_chain(self, chain: ReasoningChain) -> str:
        self.client.insert_document(self.CHAINS, chain.to_document(), overwrite_mode="replace")
        logger.debug(f"Persisted chain {chain.trace_id} status={chain.status}")
        return chain.trace_id

    def get_chain(self, trace_id: str) -> Optional[ReasoningChain]:
        doc = self.client.get_document(self.CHAINS, trace_id)
        return ReasoningChain.from_document(doc) if doc else None


__all__ = ["ChainRepository", "InMemoryChainRepository", "ArangoChainRepository"]
