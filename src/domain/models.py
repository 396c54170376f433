"""Domain models for the notification pipeline.

All models use Pydantic v2 for validation and serialization. Documents written
by the app (likes, messages, presence, tokens) ignore unknown fields so that
schema additions on the client side never break the pipeline.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class _AppDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")


class LikeDocument(_AppDocument):
    """A like from one attendee to another inside an event."""

    event_id: str | None = None
    liker_session_id: str | None = None
    liked_session_id: str | None = None
    is_mutual: bool = False

    @field_validator("is_mutual", mode="before")
    @classmethod
    def _strict_true(cls, value: Any) -> bool:
        # Only a literal true counts as mutual
        return value is True


class MessageDocument(_AppDocument):
    """A chat message between two event profiles."""

    message_id: str
    event_id: str | None = None
    from_profile_id: str | None = None
    to_profile_id: str | None = None
    from_session_id: str | None = None
    to_session_id: str | None = None
    content: str | None = None
    sender_name: str | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _text_only(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class AppPresence(_AppDocument):
    """Last foreground/background report from a client session."""

    is_foreground: bool = False
    updated_at: datetime | None = None
    installation_id: str | None = None

    @field_validator("is_foreground", mode="before")
    @classmethod
    def _strict_foreground(cls, value: Any) -> bool:
        return value is True

    @field_validator("updated_at")
    @classmethod
    def _ensure_timezone(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class Platform(StrEnum):
    IOS = "ios"
    ANDROID = "android"


class PushToken(_AppDocument):
    """Device push token registered for a session."""

    session_id: str
    platform: Platform
    token: str
    is_active: bool = True
    installation_id: str | None = None
    updated_at: datetime | None = None
    revoked_at: datetime | None = None

    @field_validator("updated_at", "revoked_at")
    @classmethod
    def _ensure_timezone(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class MuteRecord(_AppDocument):
    """Muter does not want pushes originating from the muted session."""

    event_id: str
    muter_session_id: str
    muted_session_id: str

    @property
    def document_id(self) -> str:
        return f"{self.event_id}_{self.muter_session_id}_{self.muted_session_id}"


class ChangeKind(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ChangeEvent(BaseModel):
    """A single document mutation with before/after snapshots."""

    collection: str
    document_id: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None

    @property
    def kind(self) -> ChangeKind:
        if self.before is None:
            return ChangeKind.CREATED
        if self.after is None:
            return ChangeKind.DELETED
        return ChangeKind.UPDATED


class PushMessage(BaseModel):
    """One message in a push gateway request."""

    model_config = ConfigDict(populate_by_name=True)

    to: str
    title: str
    body: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    sound: str = "default"
    priority: str = "high"
    collapse_id: str = Field(serialization_alias="collapseId")
    thread_id: str = Field(serialization_alias="threadId")
    channel_id: str = Field(serialization_alias="channelId")
    android: dict[str, Any] = Field(default_factory=dict)
    ios: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PushTicket(BaseModel):
    """Gateway status for a single message."""

    model_config = ConfigDict(extra="ignore")

    status: str
    id: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class PushBatchResult(BaseModel):
    """Outcome of one HTTP request to the gateway."""

    status_code: int
    tickets: list[PushTicket] = Field(default_factory=list)
    recipients: int = 0

    @property
    def ok(self) -> bool:
        if self.status_code != 200:
            return False
        if len(self.tickets) != self.recipients:
            return False
        return all(ticket.ok for ticket in self.tickets)


class PushDeliveryReport(BaseModel):
    """Aggregated outcome across all batches of a send."""

    sent: int = 0
    batches: list[PushBatchResult] = Field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        return all(batch.ok for batch in self.batches)

    def failure_summary(self) -> str:
        failures: list[str] = []
        for batch in self.batches:
            if batch.status_code != 200:
                failures.append(f"http_{batch.status_code}")
                continue
            for ticket in batch.tickets:
                if not ticket.ok:
                    failures.append(ticket.message or ticket.status)
            if len(batch.tickets) != batch.recipients:
                failures.append(
                    f"expected {batch.recipients} tickets, got {len(batch.tickets)}"
                )
        return "; ".join(failures) or "unknown push failure"


__all__ = [
    "AppPresence",
    "ChangeEvent",
    "ChangeKind",
    "LikeDocument",
    "MessageDocument",
    "MuteRecord",
    "Platform",
    "PushBatchResult",
    "PushDeliveryReport",
    "PushMessage",
    "PushTicket",
    "PushToken",
]
