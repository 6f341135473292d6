"""Generic partition-keyed repository over a document container."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel

from .documents import (
    ETAG_FIELD,
    DocumentClient,
    DocumentConflictError,
    DocumentContainer,
    DocumentNotFoundError,
    ItemKey,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class ConflictError(RuntimeError):
    """Raised when a write collides with an existing item or a stale etag."""


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_value(v) for v in value]
    return value


class DocumentRepository(Generic[T]):
    """Base repository for one entity type stored in one container.

    Subclasses set :attr:`model`, :attr:`container_name` and
    :attr:`partition_key_path` and implement :meth:`resolve_partition_key`.
    The container is bootstrapped lazily on first use; concurrent first
    callers share one bootstrap. A failed bootstrap is not cached, the next
    operation tries again.
    """

    model: ClassVar[type[BaseModel]]
    container_name: ClassVar[str]
    partition_key_path: ClassVar[str]

    def __init__(self, client: DocumentClient, *, page_size: int = 100) -> None:
        self._client = client
        self._page_size = page_size
        self._container: DocumentContainer | None = None
        self._init_task: asyncio.Future[DocumentContainer] | None = None

    # ------------------------------------------------------------------
    # Bootstrap

    async def _bootstrap(self) -> DocumentContainer:
        container = await self._client.create_container_if_not_exists(
            self.container_name, self.partition_key_path
        )
        self._container = container
        return container

    async def _ensure_initialized(self) -> DocumentContainer:
        if self._container is not None:
            return self._container
        task = self._init_task
        if task is None:
            task = self._init_task = asyncio.ensure_future(self._bootstrap())
        try:
            return await asyncio.shield(task)
        except Exception:
            if self._init_task is task:
                self._init_task = None
            raise

    # ------------------------------------------------------------------
    # Serialization

    def resolve_partition_key(self, entity: T) -> str:
        raise NotImplementedError

    def key_for(self, entity: T) -> ItemKey:
        return ItemKey(str(getattr(entity, "id")), self.resolve_partition_key(entity))

    def _to_document(self, entity: T) -> dict[str, Any]:
        return entity.model_dump(mode="json", exclude={"etag"})

    def _from_document(self, document: Mapping[str, Any]) -> T:
        data = dict(document)
        etag = data.pop(ETAG_FIELD, None)
        entity = self.model.model_validate(data)
        if "etag" in type(entity).model_fields:
            entity.etag = etag
        return entity  # type: ignore[return-value]

    def _apply_etag(self, entity: T, stored: Mapping[str, Any]) -> None:
        if "etag" in type(entity).model_fields:
            entity.etag = stored.get(ETAG_FIELD)

    # ------------------------------------------------------------------
    # CRUD

    async def get(self, key: ItemKey) -> T | None:
        """Return the entity stored under ``key`` or ``None``."""

        container = await self._ensure_initialized()
        try:
            document = await container.read_item(key)
        except DocumentNotFoundError:
            logger.debug("%s: item %s not found", self.container_name, key.id)
            return None
        return self._from_document(document)

    async def add(self, entity: T) -> T:
        """Create ``entity``; raise :class:`ConflictError` if the key exists."""

        container = await self._ensure_initialized()
        try:
            stored = await container.create_item(
                self.resolve_partition_key(entity), self._to_document(entity)
            )
        except DocumentConflictError as exc:
            raise ConflictError(str(exc)) from exc
        self._apply_etag(entity, stored)
        return entity

    async def upsert(self, entity: T, *, if_match: str | None = None) -> T:
        """Create or replace ``entity``.

        Without ``if_match`` the write is last-write-wins. With ``if_match``
        the replace only happens when the stored etag still equals it;
        otherwise :class:`ConflictError` is raised. The entity's ``etag`` is
        refreshed in place after a successful write.
        """

        container = await self._ensure_initialized()
        try:
            stored = await container.upsert_item(
                self.resolve_partition_key(entity),
                self._to_document(entity),
                if_match=if_match,
            )
        except DocumentConflictError as exc:
            raise ConflictError(str(exc)) from exc
        except DocumentNotFoundError:
            logger.error(
                "Failed to upsert item %s in %s", getattr(entity, "id"), self.container_name
            )
            return entity
        self._apply_etag(entity, stored)
        return entity

    async def delete(self, key: ItemKey) -> None:
        """Delete the entity under ``key``; missing keys are a no-op."""

        container = await self._ensure_initialized()
        try:
            await container.delete_item(key)
        except DocumentNotFoundError:
            logger.info("%s: item %s already absent", self.container_name, key.id)

    async def query(
        self,
        where: Mapping[str, Any] | None = None,
        predicate: Callable[[T], bool] | None = None,
    ) -> list[T]:
        """Return every entity matching ``where`` (evaluated by the store)
        and ``predicate`` (evaluated here), draining all result pages."""

        container = await self._ensure_initialized()
        normalised = {k: _json_value(v) for k, v in (where or {}).items()}
        results: list[T] = []
        async for page in container.query_items(normalised, page_size=self._page_size):
            for document in page:
                entity = self._from_document(document)
                if predicate is None or predicate(entity):
                    results.append(entity)
        return results


__all__ = ["ConflictError", "DocumentRepository"]
