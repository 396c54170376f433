"""Foreground/background presence reported by client sessions."""

from __future__ import annotations

from src.config.logging_config import get_logger
from src.domain.clock import Clock, utc_now
from src.domain.models import AppPresence
from src.domain.notification_constants import (
    APP_STATES_COLLECTION,
    PRESENCE_TTL_SECONDS,
)
from src.ports.document_store import SERVER_TIMESTAMP, DocumentStorePort

logger = get_logger(__name__)


class AppPresenceTracker:
    """Reads and records ``app_states/{session_id}`` documents.

    A presence record is a perishable hint: only a fresh ``is_foreground``
    report counts. Any read problem is treated as background so the push is
    still sent.
    """

    def __init__(
        self,
        store: DocumentStorePort,
        *,
        ttl_seconds: float = PRESENCE_TTL_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def is_foreground(self, session_id: str) -> bool:
        try:
            raw = self._store.get(APP_STATES_COLLECTION, session_id)
            if raw is None:
                return False
            presence = AppPresence.model_validate(raw)
        except Exception:  # noqa: BLE001
            logger.warning(
                "presence_read_failed", session_id=session_id, exc_info=True
            )
            return False

        if not presence.is_foreground or presence.updated_at is None:
            return False
        age = (self._clock() - presence.updated_at).total_seconds()
        return age < self._ttl_seconds

    def record(
        self,
        session_id: str,
        is_foreground: bool,
        *,
        installation_id: str | None = None,
    ) -> None:
        """Store the client's current app state with a server timestamp."""

        if not session_id.strip():
            raise ValueError("session_id must not be empty")
        self._store.put(
            APP_STATES_COLLECTION,
            session_id,
            {
                "is_foreground": is_foreground,
                "installation_id": installation_id,
                "updated_at": SERVER_TIMESTAMP,
            },
        )
        logger.info(
            "app_state_recorded", session_id=session_id, is_foreground=is_foreground
        )


__all__ = ["AppPresenceTracker"]
