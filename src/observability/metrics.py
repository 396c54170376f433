"""Prometheus metrics for the notification pipeline.

Metrics are module-level collectors registered in the default registry. The
HTTP exporter is started explicitly by process entry points through
``ensure_metrics_exporter``; importing this module has no side effects beyond
collector registration.
"""

from __future__ import annotations

import signal
import threading
from types import FrameType
from typing import Final

from prometheus_client import Counter, Histogram, start_http_server

from src.config.logging_config import get_logger

logger = get_logger(__name__)

NOTIFICATION_JOBS_ENQUEUED_TOTAL: Final[Counter] = Counter(
    "notification_jobs_enqueued_total",
    "Notification jobs inserted into the queue",
    labelnames=("type",),
)

NOTIFICATIONS_SUPPRESSED_TOTAL: Final[Counter] = Counter(
    "notifications_suppressed_total",
    "Notifications dropped before reaching the push gateway",
    labelnames=("reason",),
)

NOTIFICATION_JOB_OUTCOMES_TOTAL: Final[Counter] = Counter(
    "notification_job_outcomes_total",
    "Terminal and retry outcomes recorded for notification jobs",
    labelnames=("type", "outcome"),
)

PUSH_BATCH_DURATION_SECONDS: Final[Histogram] = Histogram(
    "push_batch_duration_seconds",
    "Duration of a single push gateway request in seconds",
)

BACKGROUND_JOBS_SUBMITTED_TOTAL: Final[Counter] = Counter(
    "background_jobs_submitted_total",
    "Background jobs submitted to the in-process runner",
    labelnames=("job",),
)

BACKGROUND_JOB_DURATION_SECONDS: Final[Histogram] = Histogram(
    "background_job_duration_seconds",
    "Duration of background jobs in seconds",
    labelnames=("job",),
)

DEFAULT_METRICS_PORT: Final[int] = 9000

_EXPORTER_LOCK = threading.Lock()
_EXPORTER_STARTED = False
_EXPORTER_STOP_EVENT = threading.Event()


def ensure_metrics_exporter(port: int = DEFAULT_METRICS_PORT) -> None:
    """Start Prometheus HTTP exporter once per process."""

    global _EXPORTER_STARTED
    with _EXPORTER_LOCK:
        if _EXPORTER_STARTED:
            return

        try:
            start_http_server(port)
        except OSError as exc:
            logger.error("metrics_exporter_start_failed", port=port, error=str(exc))
            raise

        _EXPORTER_STARTED = True
        logger.info("metrics_exporter_started", port=port)


def _handle_shutdown_signal(signum: int, frame: FrameType | None) -> None:
    logger.info("metrics_exporter_shutdown_signal", signal=signum)
    _EXPORTER_STOP_EVENT.set()


def run_metrics_exporter_forever(port: int = DEFAULT_METRICS_PORT) -> None:
    """Start the exporter and block until a shutdown signal is received."""

    ensure_metrics_exporter(port)
    for watched_signal in (signal.SIGTERM, signal.SIGINT):
        signal.signal(watched_signal, _handle_shutdown_signal)

    logger.info("metrics_exporter_listening", port=port)
    _EXPORTER_STOP_EVENT.wait()
    logger.info("metrics_exporter_stopped")


__all__ = [
    "BACKGROUND_JOBS_SUBMITTED_TOTAL",
    "BACKGROUND_JOB_DURATION_SECONDS",
    "DEFAULT_METRICS_PORT",
    "NOTIFICATIONS_SUPPRESSED_TOTAL",
    "NOTIFICATION_JOBS_ENQUEUED_TOTAL",
    "NOTIFICATION_JOB_OUTCOMES_TOTAL",
    "PUSH_BATCH_DURATION_SECONDS",
    "ensure_metrics_exporter",
    "run_metrics_exporter_forever",
]


if __name__ == "__main__":
    run_metrics_exporter_forever()
