"""Push token lookup and registration."""

from __future__ import annotations

from src.config.logging_config import get_logger
from src.domain.models import Platform
from src.domain.notification_constants import (
    MAX_TOKENS_PER_SESSION,
    PUSH_TOKENS_COLLECTION,
)
from src.ports.document_store import SERVER_TIMESTAMP, DocumentStorePort, OrderBy

logger = get_logger(__name__)


class PushTokenDirectory:
    """Reads and writes ``push_tokens/{session_id}_{platform}`` documents."""

    def __init__(self, store: DocumentStorePort) -> None:
        self._store = store

    def active_tokens(
        self, session_id: str, *, limit: int = MAX_TOKENS_PER_SESSION
    ) -> list[str]:
        """Most recently updated unique active tokens for a session.

        Store failures propagate; the delivery worker counts them as a
        failed attempt.
        """

        documents = self._store.query(
            PUSH_TOKENS_COLLECTION,
            where={"session_id": session_id, "is_active": True},
            order_by=OrderBy("updated_at", descending=True),
            limit=limit,
        )
        tokens: list[str] = []
        for document in documents:
            token = document.data.get("token")
            if isinstance(token, str) and token and token not in tokens:
                tokens.append(token)
        return tokens

    def save_token(
        self,
        session_id: str,
        platform: Platform | str,
        token: str,
        *,
        installation_id: str | None = None,
    ) -> str:
        """Upsert the session's token for ``platform`` and revoke older ones."""

        if not token.strip():
            raise ValueError("token must not be empty")
        if not session_id.strip():
            raise ValueError("session_id must not be empty")
        resolved_platform = Platform(platform)
        doc_id = f"{session_id}_{resolved_platform.value}"

        existing = self._store.query(
            PUSH_TOKENS_COLLECTION,
            where={"session_id": session_id, "platform": resolved_platform.value},
        )
        revoked = 0
        for document in existing:
            if document.id == doc_id:
                continue
            self._store.put(
                PUSH_TOKENS_COLLECTION,
                document.id,
                {"is_active": False, "revoked_at": SERVER_TIMESTAMP},
                merge=True,
            )
            revoked += 1

        self._store.put(
            PUSH_TOKENS_COLLECTION,
            doc_id,
            {
                "session_id": session_id,
                "platform": resolved_platform.value,
                "token": token,
                "installation_id": installation_id,
                "is_active": True,
                "last_seen_at": SERVER_TIMESTAMP,
                "updated_at": SERVER_TIMESTAMP,
            },
            merge=True,
        )
        logger.info(
            "push_token_saved",
            session_id=session_id,
            platform=resolved_platform.value,
            revoked=revoked,
        )
        return doc_id


__all__ = ["PushTokenDirectory"]
