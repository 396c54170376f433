"""In-process suppression of identical pushes fired in quick succession.

This cache guards against retries of the same logical send (client retry
storms, two jobs that happen to carry the same content). It is advisory and
process-local; the idempotency ledger remains the durable gate against
reprocessing the same logical event, and enqueue-time deduplication guards
the queue. The three layers use different keys and windows on purpose.
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.config.logging_config import get_logger
from src.domain.clock import Clock, utc_now
from src.domain.notification_constants import (
    DEBOUNCE_MAX_ENTRIES,
    DEBOUNCE_WINDOW_SECONDS,
)
from src.domain.notification_jobs import NotificationType

logger = get_logger(__name__)


def content_digest(content: str) -> str:
    """Stable fingerprint of a message's full text, carried on its job payload."""

    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class _Entry:
    timestamp: datetime
    content: str | None


class ContentDebounceCache:
    """Time-windowed map from (recipient, type, source) to last-sent content."""

    def __init__(
        self,
        *,
        window_seconds: float = DEBOUNCE_WINDOW_SECONDS,
        max_entries: int = DEBOUNCE_MAX_ENTRIES,
        clock: Clock = utc_now,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._window = timedelta(seconds=window_seconds)
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def _key(recipient: str, notification_type: str, source_id: str | None) -> str:
        if notification_type == NotificationType.MESSAGE and source_id:
            return f"{recipient}_{notification_type}_{source_id}"
        return f"{recipient}_{notification_type}"

    def should_skip(
        self,
        recipient: str,
        notification_type: NotificationType | str,
        source_id: str | None = None,
        content: str | None = None,
    ) -> bool:
        """Return ``True`` when this push duplicates one sent inside the window.

        Messages are skipped only on an exact content match so a second,
        different message from the same sender still goes through. Matches
        are skipped on any repeat inside the window.
        """

        kind = str(notification_type)
        key = self._key(recipient, kind, source_id)
        now = self._clock()

        with self._lock:
            last = self._entries.get(key)
            if last is not None and now - last.timestamp < self._window:
                if kind == NotificationType.MESSAGE:
                    if content and content == last.content:
                        logger.debug(
                            "debounce_skip_duplicate_content",
                            recipient=recipient,
                            source_id=source_id,
                        )
                        return True
                elif kind == NotificationType.MATCH:
                    logger.debug("debounce_skip_recent_match", recipient=recipient)
                    return True

            self._entries[key] = _Entry(
                timestamp=now,
                content=content if kind == NotificationType.MESSAGE else None,
            )
            if len(self._entries) > self._max_entries:
                self._purge(now)
        return False

    def _purge(self, now: datetime) -> None:
        cutoff = now - 2 * self._window
        stale = [key for key, entry in self._entries.items() if entry.timestamp < cutoff]
        for key in stale:
            del self._entries[key]
        logger.debug("debounce_cache_purged", removed=len(stale), size=len(self._entries))


__all__ = ["ContentDebounceCache", "content_digest"]
