"""Smoke tests for correlation scopes and Prometheus collectors."""

import structlog
from prometheus_client import REGISTRY

from src.observability.metrics import NOTIFICATIONS_SUPPRESSED_TOTAL
from src.observability.tracing import CORRELATION_ID_KEY, correlation_scope, job_scope


def test_correlation_scope_binds_and_unbinds() -> None:
    with correlation_scope(worker_id="w-1") as correlation_id:
        with job_scope("job-1"):
            context = structlog.contextvars.get_contextvars()
            assert context[CORRELATION_ID_KEY] == correlation_id
            assert context["worker_id"] == "w-1"
            assert context["job_id"] == "job-1"
        assert "job_id" not in structlog.contextvars.get_contextvars()

    context = structlog.contextvars.get_contextvars()
    assert CORRELATION_ID_KEY not in context
    assert "worker_id" not in context


def test_correlation_scope_reuses_existing_id() -> None:
    with correlation_scope("abc") as correlation_id:
        assert correlation_id == "abc"


def test_suppression_counter_increments() -> None:
    labels = {"reason": "foreground"}
    before = REGISTRY.get_sample_value("notifications_suppressed_total", labels) or 0.0

    NOTIFICATIONS_SUPPRESSED_TOTAL.labels(**labels).inc()

    assert REGISTRY.get_sample_value("notifications_suppressed_total", labels) == before + 1
