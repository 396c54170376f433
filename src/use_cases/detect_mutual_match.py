"""Mutual match detection use case.

Runs for every write to a like document and enqueues a match notification for
each participant when the like has just become mutual.
"""

from typing import Any

from src.config.logging_config import get_logger
from src.domain.models import LikeDocument
from src.domain.notification_constants import MATCH_BODY, MATCH_TITLE
from src.domain.notification_jobs import (
    NotificationJob,
    NotificationJobCreate,
    NotificationPayload,
    NotificationType,
)
from src.observability.metrics import NOTIFICATIONS_SUPPRESSED_TOTAL
from src.ports.notification_queue import NotificationQueuePort
from src.services.idempotency_ledger import IdempotencyLedger, match_key
from src.services.presence_tracker import AppPresenceTracker

logger = get_logger(__name__)


def is_rising_edge(
    before: dict[str, Any] | None, after: dict[str, Any] | None
) -> bool:
    """True only when ``is_mutual`` goes from not-true to literally true."""

    if after is None:
        return False
    was_mutual = before is not None and before.get("is_mutual") is True
    return not was_mutual and after.get("is_mutual") is True


def build_match_job(
    event_id: str, recipient_session_id: str, partner_session_id: str
) -> NotificationJobCreate:
    aggregation_key = f"match:{event_id}:{recipient_session_id}"
    return NotificationJobCreate(
        type=NotificationType.MATCH,
        event_id=event_id,
        subject_session_id=recipient_session_id,
        actor_session_id=partner_session_id,
        payload=NotificationPayload(
            title=MATCH_TITLE,
            body=MATCH_BODY,
            data={
                "type": NotificationType.MATCH.value,
                "partnerSessionId": partner_session_id,
                "aggregationKey": aggregation_key,
            },
        ),
        aggregation_key=aggregation_key,
    )


def detect_mutual_match_use_case(
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    *,
    ledger: IdempotencyLedger,
    presence: AppPresenceTracker,
    queue: NotificationQueuePort,
) -> list[NotificationJob]:
    """Enqueue match notifications for a like that just became mutual.

    Each participant is handled independently: one may be suppressed as
    foreground while the other still gets a push. Failures are logged and
    never raised to the caller.

    Args:
        before: Like document before the write (``None`` on create)
        after: Like document after the write (``None`` on delete)
        ledger: Durable idempotency gate
        presence: Foreground lookup
        queue: Notification job queue

    Returns:
        Jobs actually enqueued (empty when nothing was notifiable)
    """
    try:
        if not is_rising_edge(before, after):
            return []

        like = LikeDocument.model_validate(after)
        if not like.event_id or not like.liker_session_id or not like.liked_session_id:
            logger.info("mutual_match_missing_fields", event_id=like.event_id)
            return []

        key = match_key(like.event_id, like.liker_session_id, like.liked_session_id)
        if not ledger.claim(key):
            logger.info("mutual_match_already_processed", idempotency_key=key)
            return []

        enqueued: list[NotificationJob] = []
        participants = (
            (like.liked_session_id, like.liker_session_id),
            (like.liker_session_id, like.liked_session_id),
        )
        for recipient, partner in participants:
            if presence.is_foreground(recipient):
                logger.info(
                    "match_notification_skipped_foreground",
                    event_id=like.event_id,
                    session_id=recipient,
                )
                NOTIFICATIONS_SUPPRESSED_TOTAL.labels(reason="foreground").inc()
                continue

            job = queue.enqueue(build_match_job(like.event_id, recipient, partner))
            if job is not None:
                enqueued.append(job)

        logger.info(
            "mutual_match_detected",
            event_id=like.event_id,
            jobs_enqueued=len(enqueued),
        )
        return enqueued
    except Exception:  # noqa: BLE001
        logger.exception("mutual_match_detection_failed")
        return []


__all__ = ["build_match_job", "detect_mutual_match_use_case", "is_rising_edge"]
