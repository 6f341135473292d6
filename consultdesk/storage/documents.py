"""Low-level document container abstraction and an in-memory backend.

A *container* holds schemaless JSON documents addressed by an
``(id, partition_key)`` pair. Every write stamps the stored document with a
fresh ``_etag`` so callers can perform conditional replaces. Containers are
obtained from a :class:`DocumentClient`, which owns container bootstrap.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator, Collection, Mapping
from typing import Any, NamedTuple, Protocol
from uuid import uuid4

ETAG_FIELD = "_etag"


class ItemKey(NamedTuple):
    """Key of a stored document: primary id plus partition key."""

    id: str
    partition_key: str


class DocumentStoreError(RuntimeError):
    """Base class for store-level failures."""


class DocumentNotFoundError(DocumentStoreError, LookupError):
    """Raised by a container when the addressed document does not exist."""


class DocumentConflictError(DocumentStoreError):
    """Raised when a create collides with an existing key or an etag
    precondition does not hold."""


class DocumentContainer(Protocol):
    """Operations offered by one logical collection."""

    name: str

    async def read_item(self, key: ItemKey) -> dict[str, Any]: ...

    async def create_item(
        self, partition_key: str, document: Mapping[str, Any]
    ) -> dict[str, Any]: ...

    async def upsert_item(
        self,
        partition_key: str,
        document: Mapping[str, Any],
        *,
        if_match: str | None = None,
    ) -> dict[str, Any]: ...

    async def delete_item(self, key: ItemKey) -> None: ...

    def query_items(
        self, where: Mapping[str, Any] | None = None, *, page_size: int = 100
    ) -> AsyncIterator[list[dict[str, Any]]]: ...


class DocumentClient(Protocol):
    """Factory for containers; creates the backing structures on demand."""

    async def create_container_if_not_exists(
        self, name: str, partition_key_path: str
    ) -> DocumentContainer: ...


def new_etag() -> str:
    return uuid4().hex


def matches_where(document: Mapping[str, Any], where: Mapping[str, Any] | None) -> bool:
    """Evaluate a filter mapping against a document.

    Scalar values require equality on the top-level field. Collections (other
    than strings) require membership, comparing string forms. An empty
    collection matches nothing.
    """

    if not where:
        return True
    for field, expected in where.items():
        actual = document.get(field)
        if isinstance(expected, Collection) and not isinstance(expected, (str, bytes)):
            if actual is None or str(actual) not in {str(v) for v in expected}:
                return False
        elif actual != expected:
            return False
    return True


class InMemoryContainer:
    """Dictionary-backed container used for tests and local development."""

    def __init__(self, name: str, partition_key_path: str) -> None:
        self.name = name
        self.partition_key_path = partition_key_path
        self._items: dict[tuple[str, str], dict[str, Any]] = {}

    def _stamp(self, document: Mapping[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(dict(document))
        stored[ETAG_FIELD] = new_etag()
        return stored

    async def read_item(self, key: ItemKey) -> dict[str, Any]:
        stored = self._items.get((key.partition_key, key.id))
        if stored is None:
            raise DocumentNotFoundError(f"{self.name}: item {key.id} not found")
        return copy.deepcopy(stored)

    async def create_item(
        self, partition_key: str, document: Mapping[str, Any]
    ) -> dict[str, Any]:
        slot = (partition_key, str(document["id"]))
        if slot in self._items:
            raise DocumentConflictError(
                f"{self.name}: item {document['id']} already exists"
            )
        self._items[slot] = self._stamp(document)
        return copy.deepcopy(self._items[slot])

    async def upsert_item(
        self,
        partition_key: str,
        document: Mapping[str, Any],
        *,
        if_match: str | None = None,
    ) -> dict[str, Any]:
        slot = (partition_key, str(document["id"]))
        if if_match is not None:
            current = self._items.get(slot)
            if current is None or current[ETAG_FIELD] != if_match:
                raise DocumentConflictError(
                    f"{self.name}: precondition failed for item {document['id']}"
                )
        self._items[slot] = self._stamp(document)
        return copy.deepcopy(self._items[slot])

    async def delete_item(self, key: ItemKey) -> None:
        try:
            del self._items[(key.partition_key, key.id)]
        except KeyError as exc:
            raise DocumentNotFoundError(
                f"{self.name}: item {key.id} not found"
            ) from exc

    async def query_items(
        self, where: Mapping[str, Any] | None = None, *, page_size: int = 100
    ) -> AsyncIterator[list[dict[str, Any]]]:
        matches = [
            copy.deepcopy(doc)
            for doc in self._items.values()
            if matches_where(doc, where)
        ]
        for start in range(0, len(matches), page_size):
            # Yield control between pages like a remote feed would.
            await asyncio.sleep(0)
            yield matches[start : start + page_size]


class InMemoryDocumentClient:
    """Keeps containers alive for the lifetime of the client."""

    def __init__(self) -> None:
        self.containers: dict[str, InMemoryContainer] = {}
        self.bootstrap_calls = 0

    async def create_container_if_not_exists(
        self, name: str, partition_key_path: str
    ) -> InMemoryContainer:
        self.bootstrap_calls += 1
        await asyncio.sleep(0)
        container = self.containers.get(name)
        if container is None:
            container = InMemoryContainer(name, partition_key_path)
            self.containers[name] = container
        return container


__all__ = [
    "DocumentClient",
    "DocumentConflictError",
    "DocumentContainer",
    "DocumentNotFoundError",
    "DocumentStoreError",
    "ETAG_FIELD",
    "InMemoryContainer",
    "InMemoryDocumentClient",
    "ItemKey",
    "matches_where",
    "new_etag",
]
