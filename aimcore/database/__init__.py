"""Document-store client contracts used by the persistence adapters."""

from .document_client import CollectionDefinition, DocumentClient  # noqa: F401

__all__ = ["CollectionDefinition", "DocumentClient"]
