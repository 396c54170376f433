"""Best-effort analytics events for notification lifecycle transitions."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from src.config.logging_config import get_logger
from src.domain.clock import Clock, utc_now
from src.domain.notification_constants import NOTIFICATION_ANALYTICS_COLLECTION
from src.ports.document_store import SERVER_TIMESTAMP, DocumentStorePort

logger = get_logger(__name__)


class AnalyticsEvent(StrEnum):
    ENQUEUED = "enqueued"
    DUPLICATE_PREVENTED = "duplicate_prevented"
    SENT = "sent"
    RETRY = "retry"
    PERMANENT_FAILURE = "permanent_failure"


class NotificationAnalytics:
    """Appends one document per lifecycle event.

    Analytics never affect delivery: write failures are logged and dropped.
    """

    def __init__(self, store: DocumentStorePort, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def record(
        self,
        event: AnalyticsEvent,
        *,
        notification_type: str,
        job_id: str | None = None,
        subject_session_id: str | None = None,
        event_id: str | None = None,
        **extra: Any,
    ) -> None:
        document: dict[str, Any] = {
            "event": event.value,
            "notification_type": notification_type,
            "job_id": job_id,
            "subject_session_id": subject_session_id,
            "event_id": event_id,
            "date_partition": self._clock().strftime("%Y-%m-%d"),
            "created_at": SERVER_TIMESTAMP,
            **extra,
        }
        try:
            self._store.add(NOTIFICATION_ANALYTICS_COLLECTION, document)
        except Exception:  # noqa: BLE001
            logger.warning(
                "notification_analytics_write_failed",
                analytics_event=event.value,
                job_id=job_id,
                exc_info=True,
            )


__all__ = ["AnalyticsEvent", "NotificationAnalytics"]
