"""Clock abstraction so time-windowed rules can be tested deterministically."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware UTC now."""

    return datetime.now(tz=UTC)


__all__ = ["Clock", "utc_now"]
