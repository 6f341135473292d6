"""Partition-keyed document storage."""

from .documents import (
    DocumentClient,
    DocumentConflictError,
    DocumentNotFoundError,
    InMemoryDocumentClient,
    ItemKey,
)
from .repository import ConflictError, DocumentRepository

__all__ = [
    "ConflictError",
    "DocumentClient",
    "DocumentConflictError",
    "DocumentNotFoundError",
    "DocumentRepository",
    "InMemoryDocumentClient",
    "ItemKey",
]
