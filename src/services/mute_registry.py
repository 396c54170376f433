"""Per-event mute relationships between sessions."""

from __future__ import annotations

from src.config.logging_config import get_logger
from src.domain.exceptions import ValidationError
from src.domain.models import MuteRecord
from src.domain.notification_constants import MUTED_MATCHES_COLLECTION
from src.ports.document_store import SERVER_TIMESTAMP, DocumentStorePort

logger = get_logger(__name__)


class MuteRegistry:
    def __init__(self, store: DocumentStorePort) -> None:
        self._store = store

    def is_muted(self, event_id: str, muter_session_id: str, muted_session_id: str) -> bool:
        """Store failures propagate; callers decide whether to fail open."""

        matches = self._store.query(
            MUTED_MATCHES_COLLECTION,
            where={
                "event_id": event_id,
                "muter_session_id": muter_session_id,
                "muted_session_id": muted_session_id,
            },
            limit=1,
        )
        return bool(matches)

    def set_mute(
        self,
        event_id: str,
        muter_session_id: str,
        muted_session_id: str,
        *,
        muted: bool,
    ) -> MuteRecord:
        if not event_id or not muter_session_id or not muted_session_id:
            raise ValidationError("event_id, muter_session_id and muted_session_id are required")
        if muter_session_id == muted_session_id:
            raise ValidationError("Cannot mute yourself")

        record = MuteRecord(
            event_id=event_id,
            muter_session_id=muter_session_id,
            muted_session_id=muted_session_id,
        )
        if muted:
            self._store.put(
                MUTED_MATCHES_COLLECTION,
                record.document_id,
                {
                    **record.model_dump(),
                    "created_at": SERVER_TIMESTAMP,
                    "updated_at": SERVER_TIMESTAMP,
                },
            )
        else:
            self._store.delete(MUTED_MATCHES_COLLECTION, record.document_id)

        logger.info(
            "mute_status_updated",
            event_id=event_id,
            muter_session_id=muter_session_id,
            muted_session_id=muted_session_id,
            muted=muted,
        )
        return record


__all__ = ["MuteRegistry"]
