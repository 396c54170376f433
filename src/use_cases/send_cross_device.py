"""Immediate push to another session's devices, bypassing the job queue."""

from dataclasses import dataclass
from typing import Any

from src.config.logging_config import get_logger
from src.domain.exceptions import ValidationError
from src.domain.notification_jobs import NotificationPayload, NotificationType
from src.observability.metrics import NOTIFICATIONS_SUPPRESSED_TOTAL
from src.ports.push_gateway import PushGatewayPort
from src.services.content_debounce import ContentDebounceCache
from src.services.mute_registry import MuteRegistry
from src.services.presence_tracker import AppPresenceTracker
from src.services.push_tokens import PushTokenDirectory
from src.workers.notification_delivery import android_channel_for

logger = get_logger(__name__)

_ALLOWED_TYPES = frozenset(
    {NotificationType.MATCH, NotificationType.MESSAGE, NotificationType.GENERIC}
)


@dataclass
class CrossDeviceResult:
    success: bool
    skipped: bool = False
    reason: str | None = None
    sent_to_tokens: int = 0


def _aggregation_key(
    notification_type: NotificationType,
    target_session_id: str,
    sender_session_id: str | None,
    data: dict[str, Any],
) -> str:
    explicit = data.get("aggregationKey")
    if isinstance(explicit, str) and explicit:
        return explicit
    if notification_type == NotificationType.MESSAGE and data.get("conversationId"):
        return f"message_{data['conversationId']}"
    if sender_session_id:
        first, second = sorted((sender_session_id, target_session_id))
        return f"{notification_type.value}_{first}_{second}"
    return f"{notification_type.value}_{target_session_id}"


def send_cross_device_notification_use_case(
    notification_type: NotificationType | str,
    title: str,
    body: str | None,
    target_session_id: str,
    *,
    sender_session_id: str | None = None,
    data: dict[str, Any] | None = None,
    tokens: PushTokenDirectory,
    presence: AppPresenceTracker,
    mutes: MuteRegistry,
    debounce: ContentDebounceCache,
    gateway: PushGatewayPort,
) -> CrossDeviceResult:
    """Send a push now if the target is reachable and not suppressed.

    Raises:
        ValidationError: Missing title/target or an unsupported type
        PushGatewayError: Transport failure talking to the gateway
    """
    if not title or not target_session_id:
        raise ValidationError("type, title, and target_session_id are required")
    try:
        kind = NotificationType(notification_type)
    except ValueError as exc:
        raise ValidationError("type must be match, message, or generic") from exc
    if kind not in _ALLOWED_TYPES:
        raise ValidationError("type must be match, message, or generic")

    extra = dict(data or {})
    if sender_session_id and sender_session_id == target_session_id:
        return CrossDeviceResult(success=False, reason="Cannot send notification to self")

    event_id = extra.get("event_id")
    if kind == NotificationType.MESSAGE and sender_session_id and isinstance(event_id, str):
        try:
            muted = mutes.is_muted(event_id, target_session_id, sender_session_id)
        except Exception:  # noqa: BLE001
            logger.warning("cross_device_mute_check_failed", exc_info=True)
            muted = False
        if muted:
            NOTIFICATIONS_SUPPRESSED_TOTAL.labels(reason="muted").inc()
            return CrossDeviceResult(success=False, reason="Recipient has muted sender")

    device_tokens = tokens.active_tokens(target_session_id)
    if not device_tokens:
        return CrossDeviceResult(
            success=False, reason="No push tokens found for target session"
        )

    if presence.is_foreground(target_session_id):
        logger.info("cross_device_skipped_foreground", target_session_id=target_session_id)
        NOTIFICATIONS_SUPPRESSED_TOTAL.labels(reason="foreground").inc()
        return CrossDeviceResult(success=True, skipped=True, reason="user_in_foreground")

    is_message = kind == NotificationType.MESSAGE
    if debounce.should_skip(
        target_session_id,
        kind,
        sender_session_id if is_message else None,
        body if is_message else None,
    ):
        NOTIFICATIONS_SUPPRESSED_TOTAL.labels(reason="debounce").inc()
        return CrossDeviceResult(
            success=True,
            skipped=True,
            reason="duplicate_content" if is_message else "recent_match",
        )

    payload = NotificationPayload(
        title=title,
        body=body or "",
        data={"type": kind.value, **extra},
    )
    report = gateway.send(
        device_tokens,
        payload,
        aggregation_key=_aggregation_key(kind, target_session_id, sender_session_id, extra),
        channel_id=android_channel_for(kind),
    )
    logger.info(
        "cross_device_notification_sent",
        type=kind.value,
        target_session_id=target_session_id,
        tokens=len(device_tokens),
        all_ok=report.all_ok,
    )
    return CrossDeviceResult(
        success=report.all_ok,
        reason=None if report.all_ok else report.failure_summary(),
        sent_to_tokens=len(device_tokens),
    )


__all__ = ["CrossDeviceResult", "send_cross_device_notification_use_case"]
