"""Expiring event notices.

Scheduled hourly: every visible attendee of an event that ends within the
next hour gets a generic "about to end" notification through the job queue.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from src.adapters.document_codec import encode_timestamp
from src.config.logging_config import get_logger
from src.domain.clock import Clock, utc_now
from src.domain.notification_constants import (
    EVENT_PROFILES_COLLECTION,
    EVENTS_COLLECTION,
    EXPIRATION_BODY,
    EXPIRATION_LOOKAHEAD_SECONDS,
)
from src.domain.notification_jobs import (
    NotificationJobCreate,
    NotificationPayload,
    NotificationType,
)
from src.ports.document_store import (
    DocumentStorePort,
    OrderBy,
    RangeFilter,
    RangeOperator,
)
from src.ports.notification_queue import NotificationQueuePort

logger = get_logger(__name__)


@dataclass
class ExpirationNoticeResult:
    events_found: int = 0
    jobs_enqueued: int = 0
    profiles_skipped: int = 0
    errors: int = 0


def build_expiration_job(
    event_id: str, event_name: str, session_id: str
) -> NotificationJobCreate:
    return NotificationJobCreate(
        type=NotificationType.GENERIC,
        event_id=event_id,
        subject_session_id=session_id,
        payload=NotificationPayload(
            title=f"{event_name} is about to end",
            body=EXPIRATION_BODY,
            data={
                "type": "event_expiration",
                "event_id": event_id,
                "event_name": event_name,
            },
        ),
        aggregation_key=f"expiration:{event_id}:{session_id}",
    )


def notify_expiring_events_use_case(
    store: DocumentStorePort,
    queue: NotificationQueuePort,
    *,
    clock: Clock = utc_now,
    lookahead_seconds: float = EXPIRATION_LOOKAHEAD_SECONDS,
) -> ExpirationNoticeResult:
    """Enqueue notices for events whose ``expires_at`` falls in the lookahead.

    A failure for one attendee is logged and does not stop the others.
    """
    now: datetime = clock()
    horizon = encode_timestamp(now + timedelta(seconds=lookahead_seconds))
    result = ExpirationNoticeResult()

    # One range predicate per query: lower bound in the store, upper bound here
    upcoming = store.query(
        EVENTS_COLLECTION,
        range_filter=RangeFilter("expires_at", RangeOperator.GT, now),
        order_by=OrderBy("expires_at"),
    )
    expiring = [doc for doc in upcoming if str(doc.data.get("expires_at")) < horizon]
    result.events_found = len(expiring)

    for event_doc in expiring:
        event_name = event_doc.data.get("name") or "Event"
        profiles = store.query(
            EVENT_PROFILES_COLLECTION,
            where={"event_id": event_doc.id, "is_visible": True},
        )
        logger.info(
            "expiring_event_processing",
            event_id=event_doc.id,
            profiles=len(profiles),
        )
        for profile in profiles:
            session_id = profile.data.get("session_id")
            if not isinstance(session_id, str) or not session_id:
                logger.warning("expiring_event_profile_without_session", profile_id=profile.id)
                result.profiles_skipped += 1
                continue
            try:
                job = queue.enqueue(build_expiration_job(event_doc.id, event_name, session_id))
            except Exception:  # noqa: BLE001
                logger.exception(
                    "expiration_notice_enqueue_failed",
                    event_id=event_doc.id,
                    session_id=session_id,
                )
                result.errors += 1
                continue
            if job is not None:
                result.jobs_enqueued += 1

    logger.info(
        "expiring_events_processed",
        events=result.events_found,
        jobs_enqueued=result.jobs_enqueued,
        errors=result.errors,
    )
    return result


__all__ = [
    "ExpirationNoticeResult",
    "build_expiration_job",
    "notify_expiring_events_use_case",
]
