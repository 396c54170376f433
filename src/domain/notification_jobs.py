"""Domain models and helpers for notification job queue operations."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final

from pydantic import BaseModel, Field, field_validator

DEFAULT_MAX_ATTEMPTS: Final[int] = 5
NOTIFICATION_JOBS_COLLECTION: Final[str] = "notification_jobs"


class NotificationType(StrEnum):
    """Logical notification categories."""

    MESSAGE = "message"
    MATCH = "match"
    LIKE = "like"
    GENERIC = "generic"


class JobStatus(StrEnum):
    """Processing lifecycle states for notification jobs."""

    QUEUED = "queued"
    LEASED = "leased"
    SENT = "sent"
    PERMANENT_FAILURE = "permanent-failure"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SENT, JobStatus.PERMANENT_FAILURE)


class NotificationPayload(BaseModel):
    """Content shown on the device."""

    title: str
    body: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("title")
    @classmethod
    def _validate_title(cls, value: str) -> str:
        if not value.strip():
            msg = "title must not be empty"
            raise ValueError(msg)
        return value


class NotificationJobCreate(BaseModel):
    """Schema used when enqueuing a new notification job."""

    type: NotificationType
    event_id: str | None = None
    subject_session_id: str
    actor_session_id: str | None = None
    payload: NotificationPayload
    aggregation_key: str

    @field_validator("subject_session_id", "aggregation_key")
    @classmethod
    def _ensure_present(cls, value: str) -> str:
        if not value:
            msg = "value must not be empty"
            raise ValueError(msg)
        return value

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class NotificationJob(BaseModel):
    """Persisted notification job representation."""

    job_id: str
    type: NotificationType
    event_id: str | None = None
    subject_session_id: str
    actor_session_id: str | None = None
    payload: NotificationPayload
    aggregation_key: str
    attempts: int = 0
    status: JobStatus
    error: str | None = None
    created_at: datetime
    updated_at: datetime
    version: int = 0
    lease_owner: str | None = None
    lease_expires_at: datetime | None = None

    @field_validator("created_at", "updated_at", "lease_expires_at")
    @classmethod
    def _ensure_timezone(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @classmethod
    def from_document(cls, job_id: str, data: dict[str, Any]) -> NotificationJob:
        return cls.model_validate({**data, "job_id": job_id})

    def age(self, now: datetime) -> float:
        """Seconds elapsed since the job was created."""

        return (now - self.created_at).total_seconds()


__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "NOTIFICATION_JOBS_COLLECTION",
    "JobStatus",
    "NotificationJob",
    "NotificationJobCreate",
    "NotificationPayload",
    "NotificationType",
]
