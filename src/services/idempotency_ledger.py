"""Durable at-most-once gate for logical events."""

from __future__ import annotations

from src.config.logging_config import get_logger
from src.domain.notification_constants import IDEMPOTENCY_COLLECTION
from src.ports.document_store import SERVER_TIMESTAMP, DocumentStorePort

logger = get_logger(__name__)


def match_key(event_id: str, first_session: str, second_session: str) -> str:
    """Pair key is order independent: both like documents map to one key."""

    pair = "|".join(sorted((first_session, second_session)))
    return f"match:{event_id}:{pair}"


def message_key(event_id: str, message_id: str) -> str:
    return f"msg:{event_id}:{message_id}"


class IdempotencyLedger:
    """Set of claimed keys stored as existence-only documents."""

    def __init__(
        self, store: DocumentStorePort, *, collection: str = IDEMPOTENCY_COLLECTION
    ) -> None:
        self._store = store
        self._collection = collection

    def claim(self, key: str) -> bool:
        """Return ``True`` only for the first caller to claim ``key``.

        An already-claimed key is the normal ``False`` outcome, not an error.
        Store failures propagate to the caller.
        """

        created = self._store.create(
            self._collection, key, {"created_at": SERVER_TIMESTAMP}
        )
        if not created:
            logger.debug("idempotency_key_already_claimed", key=key)
        return created


__all__ = ["IdempotencyLedger", "match_key", "message_key"]
