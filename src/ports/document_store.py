"""Port definition for the document store backing the pipeline."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Final, Protocol, runtime_checkable


class _ServerTimestamp:
    """Sentinel replaced by the store's own clock at write time."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Final[_ServerTimestamp] = _ServerTimestamp()


class RangeOperator(StrEnum):
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="


@dataclass(frozen=True, slots=True)
class RangeFilter:
    """Single range predicate on one field."""

    field: str
    op: RangeOperator
    value: Any


@dataclass(frozen=True, slots=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True, slots=True)
class Document:
    """A stored document and its identifier."""

    id: str
    data: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class DocumentStorePort(Protocol):
    """Abstract interface implemented by document store adapters.

    Writes are last-write-wins per document. ``SERVER_TIMESTAMP`` values in
    written fields are replaced with the store's current time. Timestamps are
    returned as ISO-8601 UTC strings that sort chronologically.
    """

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return document fields or ``None`` when absent."""

    def put(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        """Write a document, replacing it or merging top-level fields."""

    def add(self, collection: str, fields: Mapping[str, Any]) -> str:
        """Insert a document under a generated id and return the id."""

    def create(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        """Insert only if absent. Returns ``True`` when this call created it."""

    def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        expected: Mapping[str, Any],
        fields: Mapping[str, Any],
    ) -> bool:
        """Merge ``fields`` only if every ``expected`` field currently matches."""

    def delete(self, collection: str, doc_id: str) -> None:
        """Remove a document if it exists."""

    def query(
        self,
        collection: str,
        *,
        where: Mapping[str, Any] | None = None,
        range_filter: RangeFilter | None = None,
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        """Query by equality predicates, one optional range, ordering and limit."""

    def batch_delete(self, refs: Sequence[tuple[str, str]]) -> int:
        """Delete ``(collection, doc_id)`` pairs; return how many existed."""


__all__ = [
    "SERVER_TIMESTAMP",
    "Document",
    "DocumentStorePort",
    "OrderBy",
    "RangeFilter",
    "RangeOperator",
]
