"""Encoding helpers shared by document store adapters."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Final

from src.domain.exceptions import ValidationError
from src.ports.document_store import SERVER_TIMESTAMP

TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%dT%H:%M:%S.%fZ"
_FIELD_PATH_RE: Final[re.Pattern[str]] = re.compile(
    r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$"
)
_COLLECTION_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def encode_timestamp(value: datetime) -> str:
    """Fixed-width UTC timestamp so lexical order equals chronological order."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def encode_value(value: Any, *, now: datetime | None = None) -> Any:
    """Convert a Python value into its stored JSON form."""

    if value is SERVER_TIMESTAMP:
        if now is None:
            msg = "SERVER_TIMESTAMP is only valid in written fields"
            raise ValidationError(msg)
        return encode_timestamp(now)
    if isinstance(value, datetime):
        return encode_timestamp(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(key): encode_value(item, now=now) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [encode_value(item, now=now) for item in value]
    return value


def encode_fields(fields: Mapping[str, Any], *, now: datetime) -> dict[str, Any]:
    encoded = encode_value(fields, now=now)
    return dict(encoded)


def dumps(data: Mapping[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"), sort_keys=True)


def loads(raw: str | bytes | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)
    loaded = json.loads(raw)
    if not isinstance(loaded, dict):
        msg = "stored document is not an object"
        raise ValidationError(msg)
    return loaded


def get_path(data: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted field path; missing segments yield ``None``."""

    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def matches_expected(data: Mapping[str, Any], expected: Mapping[str, Any]) -> bool:
    return all(
        get_path(data, key) == encode_value(value) for key, value in expected.items()
    )


def validate_field_path(path: str) -> str:
    if not _FIELD_PATH_RE.match(path):
        raise ValidationError(f"Invalid field path: {path!r}")
    return path


def validate_collection(name: str) -> str:
    if not _COLLECTION_RE.match(name):
        raise ValidationError(f"Invalid collection name: {name!r}")
    return name


__all__ = [
    "TIMESTAMP_FORMAT",
    "dumps",
    "encode_fields",
    "encode_timestamp",
    "encode_value",
    "get_path",
    "loads",
    "matches_expected",
    "validate_collection",
    "validate_field_path",
]
