"""
Document Client - Contract for the external document store

WHAT: Protocol describing the client the persistence adapters talk to
WHERE: aimcore/database/document_client.py - below every repository
WHO: ArangoMemoryRepository, ArangoChainRepository
TIME: Bounded by the backing store's own latency

The runtime never opens connections itself. Deployments hand a client with
this surface (an ArangoDB HTTP client, or a test double) to the document
repositories.

Boundary Notes:
- Queries are parameterized AQL only; repositories never interpolate values
- Unique indexes enforce content-hash uniqueness at the store
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional, Protocol


@dataclass(slots=True)
class CollectionDefinition:
    name: str
    type: Literal["document", "edge"] = "document"
    indexes: List[Dict[str, Any]] = field(default_factory=list)


class DocumentClient(Protocol):
    """Minimal surface required from a document-store client."""

    def create_collections(self, definitions: Iterable[CollectionDefinition]) -> None:
        """Create collections and indexes if missing (idempotent)."""

    def insert_document(self, collection: str, doc: Dict[str, Any], *, overwrite_mode: Optional[str] = None) -> Dict[str, Any]:
        """Insert one document; raises on unique-index violation."""

    def get_document(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        """Fetch one document by key, or None."""

    def update_document(self, collection: str, key: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Patch one document by key."""

    def execute_query(self, aql: str, bind_vars: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a parameterized AQL query and return all rows."""

    def close(self) -> None:
        """Release connections."""


__all__ = ["CollectionDefinition", "DocumentClient"]
