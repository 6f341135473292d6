"""PostgreSQL (JSONB) implementation of the document container protocol."""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable, Collection, Mapping
from typing import Any
from uuid import uuid4

import psycopg
from psycopg import sql
from psycopg.errors import UniqueViolation
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from .documents import (
    ETAG_FIELD,
    DocumentConflictError,
    DocumentNotFoundError,
    ItemKey,
    new_etag,
)

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], Awaitable[psycopg.AsyncConnection]]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _identifier(value: str) -> str:
    if not _IDENTIFIER.match(value):
        raise ValueError(f"Invalid container or schema name: {value!r}")
    return value


def _hydrate(row: Mapping[str, Any]) -> dict[str, Any]:
    document = dict(row["doc"])
    document[ETAG_FIELD] = row["etag"]
    return document


class PostgresContainer:
    """One table per container; documents live in a JSONB column."""

    def __init__(
        self,
        connect: ConnectionFactory,
        schema: str,
        name: str,
        partition_key_path: str,
    ) -> None:
        self._connect = connect
        self.schema = _identifier(schema)
        self.name = _identifier(name)
        self.partition_key_path = partition_key_path
        self._table = sql.Identifier(self.schema, self.name)

    async def read_item(self, key: ItemKey) -> dict[str, Any]:
        query = sql.SQL(
            "SELECT doc, etag FROM {} WHERE partition_key = %s AND id = %s"
        ).format(self._table)
        async with await self._connect() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query, (key.partition_key, key.id))
                row = await cur.fetchone()
        if row is None:
            raise DocumentNotFoundError(f"{self.name}: item {key.id} not found")
        return _hydrate(row)

    async def create_item(
        self, partition_key: str, document: Mapping[str, Any]
    ) -> dict[str, Any]:
        query = sql.SQL(
            "INSERT INTO {} (id, partition_key, etag, doc) VALUES (%s, %s, %s, %s) "
            "RETURNING doc, etag"
        ).format(self._table)
        params = (str(document["id"]), partition_key, new_etag(), Jsonb(dict(document)))
        try:
            async with await self._connect() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(query, params)
                    row = await cur.fetchone()
        except UniqueViolation as exc:
            raise DocumentConflictError(
                f"{self.name}: item {document['id']} already exists"
            ) from exc
        return _hydrate(row)

    async def upsert_item(
        self,
        partition_key: str,
        document: Mapping[str, Any],
        *,
        if_match: str | None = None,
    ) -> dict[str, Any]:
        item_id = str(document["id"])
        etag = new_etag()
        if if_match is None:
            query = sql.SQL(
                "INSERT INTO {} (id, partition_key, etag, doc) VALUES (%s, %s, %s, %s) "
                "ON CONFLICT (partition_key, id) DO UPDATE "
                "SET etag = EXCLUDED.etag, doc = EXCLUDED.doc, updated_at = now() "
                "RETURNING doc, etag"
            ).format(self._table)
            params: tuple[Any, ...] = (item_id, partition_key, etag, Jsonb(dict(document)))
        else:
            query = sql.SQL(
                "UPDATE {} SET etag = %s, doc = %s, updated_at = now() "
                "WHERE partition_key = %s AND id = %s AND etag = %s "
                "RETURNING doc, etag"
            ).format(self._table)
            params = (etag, Jsonb(dict(document)), partition_key, item_id, if_match)
        async with await self._connect() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query, params)
                row = await cur.fetchone()
        if row is None:
            raise DocumentConflictError(
                f"{self.name}: precondition failed for item {item_id}"
            )
        return _hydrate(row)

    async def delete_item(self, key: ItemKey) -> None:
        query = sql.SQL("DELETE FROM {} WHERE partition_key = %s AND id = %s").format(
            self._table
        )
        async with await self._connect() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, (key.partition_key, key.id))
                deleted = cur.rowcount
        if not deleted:
            raise DocumentNotFoundError(f"{self.name}: item {key.id} not found")

    def _where_clause(
        self, where: Mapping[str, Any] | None
    ) -> tuple[sql.Composable, list[Any]]:
        if not where:
            return sql.SQL("TRUE"), []
        clauses: list[sql.Composable] = []
        params: list[Any] = []
        for field, expected in where.items():
            if isinstance(expected, Collection) and not isinstance(expected, (str, bytes)):
                clauses.append(sql.SQL("doc ->> %s = ANY(%s)"))
                params.extend([field, [str(v) for v in expected]])
            else:
                clauses.append(sql.SQL("doc @> %s"))
                params.append(Jsonb({field: expected}))
        return sql.SQL(" AND ").join(clauses), params

    async def query_items(
        self, where: Mapping[str, Any] | None = None, *, page_size: int = 100
    ) -> AsyncIterator[list[dict[str, Any]]]:
        clause, params = self._where_clause(where)
        query = sql.SQL("SELECT doc, etag FROM {} WHERE {} ORDER BY created_at, id").format(
            self._table, clause
        )
        async with await self._connect() as conn:
            async with conn.transaction():
                # Named cursors stream server-side, one page per round trip.
                cursor_name = f"{self.name}_feed_{uuid4().hex[:8]}"
                async with conn.cursor(
                    name=cursor_name, row_factory=dict_row
                ) as cur:
                    await cur.execute(query, params)
                    while True:
                        rows = await cur.fetchmany(page_size)
                        if not rows:
                            break
                        yield [_hydrate(row) for row in rows]


class PostgresDocumentClient:
    """Creates schema and container tables on demand."""

    def __init__(
        self,
        dsn: str | None = None,
        *,
        schema: str = "consultdesk",
        connect: ConnectionFactory | None = None,
    ) -> None:
        if connect is None:
            if not dsn:
                raise ValueError("PostgresDocumentClient requires a dsn or connect factory")

            async def connect() -> psycopg.AsyncConnection:
                return await psycopg.AsyncConnection.connect(dsn, autocommit=True)

        self._connect = connect
        self.schema = _identifier(schema)

    async def create_container_if_not_exists(
        self, name: str, partition_key_path: str
    ) -> PostgresContainer:
        table = sql.Identifier(self.schema, _identifier(name))
        statements = [
            sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(self.schema)),
            sql.SQL(
                """
                CREATE TABLE IF NOT EXISTS {} (
                    id TEXT NOT NULL,
                    partition_key TEXT NOT NULL,
                    etag TEXT NOT NULL,
                    doc JSONB NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    PRIMARY KEY (partition_key, id)
                )
                """
            ).format(table),
            sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} USING GIN (doc)").format(
                sql.Identifier(f"{name}_doc_gin"), table
            ),
        ]
        async with await self._connect() as conn:
            async with conn.cursor() as cur:
                for statement in statements:
                    await cur.execute(statement)
        logger.info(
            "Container %s.%s ready (partition key %s)",
            self.schema,
            name,
            partition_key_path,
        )
        return PostgresContainer(self._connect, self.schema, name, partition_key_path)


__all__ = ["PostgresContainer", "PostgresDocumentClient"]
