"""New message detection use case.

Runs once per created message document and enqueues a single push for the
recipient unless the message is a self-message, the recipient muted the
sender, or the recipient is looking at the app.
"""

from typing import Any

from src.config.logging_config import get_logger
from src.domain.models import MessageDocument
from src.domain.notification_constants import (
    CONTENT_DIGEST_KEY,
    EVENT_PROFILES_COLLECTION,
    MESSAGE_BODY_FALLBACK,
    MESSAGE_PREVIEW_CHARS,
    SENDER_NAME_PLACEHOLDER,
)
from src.domain.notification_jobs import (
    NotificationJob,
    NotificationJobCreate,
    NotificationPayload,
    NotificationType,
)
from src.observability.metrics import NOTIFICATIONS_SUPPRESSED_TOTAL
from src.ports.document_store import DocumentStorePort
from src.ports.notification_queue import NotificationQueuePort
from src.services.content_debounce import content_digest
from src.services.idempotency_ledger import IdempotencyLedger, message_key
from src.services.mute_registry import MuteRegistry
from src.services.presence_tracker import AppPresenceTracker

logger = get_logger(__name__)


def _profile_field(store: DocumentStorePort, profile_id: str, field: str) -> Any:
    profile = store.get(EVENT_PROFILES_COLLECTION, profile_id)
    if profile is None:
        return None
    return profile.get(field)


def resolve_sender_name(store: DocumentStorePort, message: MessageDocument) -> str:
    """Sender name from the message, else the sender's profile, else a placeholder."""

    if message.sender_name:
        return message.sender_name
    if not message.from_profile_id:
        return SENDER_NAME_PLACEHOLDER
    try:
        first_name = _profile_field(store, message.from_profile_id, "first_name")
    except Exception:  # noqa: BLE001
        logger.warning(
            "sender_name_lookup_failed",
            profile_id=message.from_profile_id,
            exc_info=True,
        )
        return SENDER_NAME_PLACEHOLDER
    return first_name if isinstance(first_name, str) and first_name else SENDER_NAME_PLACEHOLDER


def _resolve_sender_session(
    store: DocumentStorePort, message: MessageDocument
) -> str | None:
    if message.from_session_id:
        return message.from_session_id
    if not message.from_profile_id:
        return None
    try:
        session_id = _profile_field(store, message.from_profile_id, "session_id")
    except Exception:  # noqa: BLE001
        logger.warning(
            "sender_session_lookup_failed",
            profile_id=message.from_profile_id,
            exc_info=True,
        )
        return None
    return session_id if isinstance(session_id, str) and session_id else None


def _resolve_recipient_session(
    store: DocumentStorePort, message: MessageDocument
) -> str | None:
    if message.to_session_id:
        return message.to_session_id
    if not message.to_profile_id:
        return None
    session_id = _profile_field(store, message.to_profile_id, "session_id")
    return session_id if isinstance(session_id, str) and session_id else None


def build_message_job(
    *,
    event_id: str,
    to_profile_id: str,
    recipient_session_id: str,
    sender_session_id: str | None,
    sender_name: str,
    content: str | None,
) -> NotificationJobCreate:
    aggregation_key = f"message:{event_id}:{to_profile_id}"
    body = content[:MESSAGE_PREVIEW_CHARS] if content is not None else MESSAGE_BODY_FALLBACK
    data: dict[str, Any] = {
        "type": NotificationType.MESSAGE.value,
        "conversationId": to_profile_id,
        "partnerSessionId": sender_session_id,
        "aggregationKey": aggregation_key,
    }
    if content is not None:
        data[CONTENT_DIGEST_KEY] = content_digest(content)
    return NotificationJobCreate(
        type=NotificationType.MESSAGE,
        event_id=event_id,
        subject_session_id=recipient_session_id,
        actor_session_id=sender_session_id,
        payload=NotificationPayload(
            title=f"New message from {sender_name}",
            body=body,
            data=data,
        ),
        aggregation_key=aggregation_key,
    )


def detect_new_message_use_case(
    message_id: str,
    data: dict[str, Any] | None,
    *,
    store: DocumentStorePort,
    ledger: IdempotencyLedger,
    presence: AppPresenceTracker,
    mutes: MuteRegistry,
    queue: NotificationQueuePort,
) -> NotificationJob | None:
    """Enqueue a push for a newly created message.

    Args:
        message_id: Document id of the message (``data["id"]`` wins if present)
        data: Created message document
        store: Document store for profile lookups
        ledger: Durable idempotency gate
        presence: Foreground lookup
        mutes: Mute registry consulted for the recipient
        queue: Notification job queue

    Returns:
        The enqueued job, or ``None`` when the message was not notifiable
    """
    try:
        if data is None:
            return None

        raw_id = data.get("id")
        message = MessageDocument.model_validate(
            {**data, "message_id": raw_id if isinstance(raw_id, str) and raw_id else message_id}
        )
        sender_name = resolve_sender_name(store, message)
        if not message.event_id or not message.from_profile_id or not message.to_profile_id:
            logger.info("new_message_missing_fields", message_id=message.message_id)
            return None

        key = message_key(message.event_id, message.message_id)
        if not ledger.claim(key):
            logger.info("new_message_already_processed", idempotency_key=key)
            return None

        if message.from_profile_id == message.to_profile_id:
            logger.info("new_message_self_message_ignored", message_id=message.message_id)
            return None

        recipient_session = _resolve_recipient_session(store, message)
        if recipient_session is None:
            logger.info(
                "new_message_recipient_session_missing",
                message_id=message.message_id,
                to_profile_id=message.to_profile_id,
            )
            return None

        sender_session = _resolve_sender_session(store, message)

        if sender_session is not None:
            try:
                muted = mutes.is_muted(message.event_id, recipient_session, sender_session)
            except Exception:  # noqa: BLE001
                logger.warning(
                    "mute_check_failed",
                    message_id=message.message_id,
                    exc_info=True,
                )
                muted = False
            if muted:
                logger.info(
                    "new_message_skipped_muted",
                    message_id=message.message_id,
                    recipient_session_id=recipient_session,
                )
                NOTIFICATIONS_SUPPRESSED_TOTAL.labels(reason="muted").inc()
                return None

        if presence.is_foreground(recipient_session):
            logger.info(
                "new_message_skipped_foreground",
                message_id=message.message_id,
                recipient_session_id=recipient_session,
            )
            NOTIFICATIONS_SUPPRESSED_TOTAL.labels(reason="foreground").inc()
            return None

        return queue.enqueue(
            build_message_job(
                event_id=message.event_id,
                to_profile_id=message.to_profile_id,
                recipient_session_id=recipient_session,
                sender_session_id=sender_session,
                sender_name=sender_name,
                content=message.content,
            )
        )
    except Exception:  # noqa: BLE001
        logger.exception("new_message_detection_failed", message_id=message_id)
        return None


__all__ = ["build_message_job", "detect_new_message_use_case", "resolve_sender_name"]
