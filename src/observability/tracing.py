"""Correlation identifiers bound into structured logs."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

from src.config.logging_config import bind_context, unbind_context

CORRELATION_ID_KEY = "correlation_id"


@contextmanager
def correlation_scope(existing_id: str | None = None, **fields: str) -> Iterator[str]:
    """Bind a correlation id, plus optional extra fields, for the context.

    A drain cycle binds one id for the whole batch; each job then binds its
    ``job_id`` in a nested scope so every log line can be traced to both.
    """

    correlation_id = existing_id or str(uuid4())
    bound = {CORRELATION_ID_KEY: correlation_id, **fields}
    bind_context(**bound)
    try:
        yield correlation_id
    finally:
        unbind_context(*bound)


@contextmanager
def job_scope(job_id: str) -> Iterator[None]:
    bind_context(job_id=job_id)
    try:
        yield
    finally:
        unbind_context("job_id")


__all__ = ["CORRELATION_ID_KEY", "correlation_scope", "job_scope"]
