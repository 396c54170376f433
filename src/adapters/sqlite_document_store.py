"""SQLite document store adapter for local development and tests.

Documents are JSON text in a single table keyed by (collection, doc_id).
Equality, range and ordering are pushed down through ``json_extract``.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Final
from uuid import uuid4

from src.adapters import document_codec as codec
from src.config.logging_config import get_logger
from src.domain.clock import Clock, utc_now
from src.domain.exceptions import RepositoryError
from src.ports.document_store import Document, OrderBy, RangeFilter

logger = get_logger(__name__)

SQLITE_BUSY_TIMEOUT_SECONDS: Final[float] = 5.0


def _json_path(field_path: str) -> str:
    return "$." + codec.validate_field_path(field_path)


class SQLiteDocumentStore:
    """SQLite-backed implementation of ``DocumentStorePort``."""

    def __init__(self, db_path: str, *, clock: Clock = utc_now) -> None:
        """Initialize store and ensure schema.

        Args:
            db_path: Path to SQLite database file
            clock: Source of server timestamps
        """
        self.db_path = db_path
        self._clock = clock

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._create_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            self.db_path,
            timeout=SQLITE_BUSY_TIMEOUT_SECONDS,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as exc:
            raise RepositoryError(f"SQLite operation failed: {exc}") from exc
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _create_schema(self) -> None:
        logger.info("sqlite_schema_creation_started", db_path=str(self.db_path))
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (collection, doc_id)
                )
                """
            )

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                (codec.validate_collection(collection), doc_id),
            ).fetchone()
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
        with self._transaction() as conn:
            if merge:
                row = conn.execute(
                    "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                    (codec.validate_collection(collection), doc_id),
                ).fetchone()
                if row is not None:
                    encoded = {**codec.loads(row["data"]), **encoded}
            conn.execute(
                """
                INSERT INTO documents (collection, doc_id, data)
                VALUES (?, ?, ?)
                ON CONFLICT(collection, doc_id) DO UPDATE SET data = excluded.data
                """,
                (codec.validate_collection(collection), doc_id, codec.dumps(encoded)),
            )

    def add(self, collection: str, fields: Mapping[str, Any]) -> str:
        doc_id = uuid4().hex
        if not self.create(collection, doc_id, fields):
            raise RepositoryError(f"Generated id collision in {collection}: {doc_id}")
        return doc_id

    def create(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        encoded = codec.encode_fields(fields, now=self._clock())
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO documents (collection, doc_id, data)
                VALUES (?, ?, ?)
                ON CONFLICT(collection, doc_id) DO NOTHING
                """,
                (codec.validate_collection(collection), doc_id, codec.dumps(encoded)),
            )
            return cursor.rowcount == 1

    def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        expected: Mapping[str, Any],
        fields: Mapping[str, Any],
    ) -> bool:
        encoded = codec.encode_fields(fields, now=self._clock())
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                (codec.validate_collection(collection), doc_id),
            ).fetchone()
            if row is None:
                return False
            current = codec.loads(row["data"])
            if not codec.matches_expected(current, expected):
                return False
            conn.execute(
                "UPDATE documents SET data = ? WHERE collection = ? AND doc_id = ?",
                (codec.dumps({**current, **encoded}), collection, doc_id),
            )
            return True

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
        clauses = ["collection = ?"]
        params: list[Any] = [codec.validate_collection(collection)]

        for field_path, value in (where or {}).items():
            encoded = codec.encode_value(value)
            if encoded is None:
                clauses.append(f"json_extract(data, '{_json_path(field_path)}') IS NULL")
            else:
                clauses.append(f"json_extract(data, '{_json_path(field_path)}') = ?")
                params.append(encoded)

        if range_filter is not None:
            clauses.append(
                f"json_extract(data, '{_json_path(range_filter.field)}') "
                f"{range_filter.op.value} ?"
            )
            params.append(codec.encode_value(range_filter.value))

        sql = "SELECT doc_id, data FROM documents WHERE " + " AND ".join(clauses)
        if order_by is not None:
            direction = "DESC" if order_by.descending else "ASC"
            sql += (
                f" ORDER BY json_extract(data, '{_json_path(order_by.field)}') "
                f"{direction}, doc_id {direction}"
            )
        if limit is not None:
            if limit <= 0:
                raise ValueError("limit must be positive")
            sql += " LIMIT ?"
            params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [Document(id=row["doc_id"], data=codec.loads(row["data"])) for row in rows]

    def batch_delete(self, refs: Sequence[tuple[str, str]]) -> int:
        deleted = 0
        with self._transaction() as conn:
            for collection, doc_id in refs:
                cursor = conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                    (codec.validate_collection(collection), doc_id),
                )
                deleted += cursor.rowcount
        return deleted


__all__ = ["SQLiteDocumentStore"]
