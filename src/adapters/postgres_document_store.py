"""PostgreSQL implementation of the document store port (JSONB documents)."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from contextlib import AbstractContextManager
from typing import Any
from uuid import uuid4

from psycopg2.extras import Json, RealDictCursor

from src.adapters import document_codec as codec
from src.config.logging_config import get_logger
from src.domain.clock import Clock, utc_now
from src.domain.exceptions import RepositoryError
from src.ports.document_store import Document, OrderBy, RangeFilter

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    doc_id TEXT NOT NULL,
    data JSONB NOT NULL,
    PRIMARY KEY (collection, doc_id)
);
CREATE INDEX IF NOT EXISTS documents_data_gin ON documents USING GIN (data);
"""


def _path(field_path: str) -> list[str]:
    return codec.validate_field_path(field_path).split(".")


def _equals(field_path: str, value: Any) -> tuple[str, list[Any]]:
    """WHERE clause matching one field; ``None`` also matches a missing field."""

    path = _path(field_path)
    encoded = codec.encode_value(value)
    if encoded is None:
        return "(data #> %s IS NULL OR data #> %s = 'null'::jsonb)", [path, path]
    return "data #> %s = %s::jsonb", [path, Json(encoded)]


class PostgresDocumentStore:
    """Document store backed by a single JSONB table."""

    def __init__(
        self,
        connection_provider: Callable[[], AbstractContextManager[Any]],
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._connection_provider = connection_provider
        self._clock = clock

    def ensure_schema(self) -> None:
        with self._connection_provider() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
            conn.commit()
        logger.info("postgres_document_schema_ready")

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._connection_provider() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    "SELECT data FROM documents WHERE collection = %s AND doc_id = %s",
                    (codec.validate_collection(collection), doc_id),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            return None
        return codec.loads(row["data"])

    def put(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        encoded = codec.encode_fields(fields, now=self._clock())
        update = "documents.data || EXCLUDED.data" if merge else "EXCLUDED.data"
        with self._connection_provider() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO documents (collection, doc_id, data)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (collection, doc_id) DO UPDATE SET data = {update}
                    """,
                    (codec.validate_collection(collection), doc_id, Json(encoded)),
                )
            conn.commit()

    def add(self, collection: str, fields: Mapping[str, Any]) -> str:
        doc_id = uuid4().hex
        if not self.create(collection, doc_id, fields):
            raise RepositoryError(f"Generated id collision in {collection}: {doc_id}")
        return doc_id

    def create(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        encoded = codec.encode_fields(fields, now=self._clock())
        with self._connection_provider() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO documents (collection, doc_id, data)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (collection, doc_id) DO NOTHING
                    RETURNING doc_id
                    """,
                    (codec.validate_collection(collection), doc_id, Json(encoded)),
                )
                created = cur.fetchone() is not None
            conn.commit()
        return created

    def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        expected: Mapping[str, Any],
        fields: Mapping[str, Any],
    ) -> bool:
        encoded = codec.encode_fields(fields, now=self._clock())
        clauses = ["collection = %s", "doc_id = %s"]
        params: list[Any] = [Json(encoded), codec.validate_collection(collection), doc_id]
        for field_path, value in expected.items():
            clause, clause_params = _equals(field_path, value)
            clauses.append(clause)
            params.extend(clause_params)

        with self._connection_provider() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE documents SET data = data || %s::jsonb WHERE "
                    + " AND ".join(clauses),
                    params,
                )
                updated = cur.rowcount == 1
            conn.commit()
        return updated

    def delete(self, collection: str, doc_id: str) -> None:
        self.batch_delete([(collection, doc_id)])

    def query(
        self,
        collection: str,
        *,
        where: Mapping[str, Any] | None = None,
        range_filter: RangeFilter | None = None,
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        clauses = ["collection = %s"]
        params: list[Any] = [codec.validate_collection(collection)]

        for field_path, value in (where or {}).items():
            clause, clause_params = _equals(field_path, value)
            clauses.append(clause)
            params.extend(clause_params)

        if range_filter is not None:
            value = codec.encode_value(range_filter.value)
            if isinstance(value, str):
                clauses.append(f'data #>> %s COLLATE "C" {range_filter.op.value} %s')
            else:
                clauses.append(f"(data #>> %s)::numeric {range_filter.op.value} %s")
            params.extend([_path(range_filter.field), value])

        sql = "SELECT doc_id, data FROM documents WHERE " + " AND ".join(clauses)
        if order_by is not None:
            direction = "DESC" if order_by.descending else "ASC"
            sql += f' ORDER BY data #>> %s COLLATE "C" {direction}, doc_id {direction}'
            params.append(_path(order_by.field))
        if limit is not None:
            if limit <= 0:
                raise ValueError("limit must be positive")
            sql += " LIMIT %s"
            params.append(limit)

        with self._connection_provider() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
            conn.commit()
        return [Document(id=row["doc_id"], data=codec.loads(row["data"])) for row in rows]

    def batch_delete(self, refs: Sequence[tuple[str, str]]) -> int:
        if not refs:
            return 0
        deleted = 0
        with self._connection_provider() as conn:
            with conn.cursor() as cur:
                for collection, doc_id in refs:
                    cur.execute(
                        "DELETE FROM documents WHERE collection = %s AND doc_id = %s",
                        (codec.validate_collection(collection), doc_id),
                    )
                    deleted += cur.rowcount
            conn.commit()
        return deleted


__all__ = ["PostgresDocumentStore", "SCHEMA_SQL"]
