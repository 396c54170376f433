"""Port definition for notification job queue backends."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from src.domain.notification_jobs import NotificationJob, NotificationJobCreate


@runtime_checkable
class NotificationQueuePort(Protocol):
    """Abstract interface implemented by notification queue adapters."""

    def enqueue(self, job: NotificationJobCreate) -> NotificationJob | None:
        """Store a queued job, or return ``None`` when a recent duplicate exists."""

    def get(self, job_id: str) -> NotificationJob | None:
        """Fetch a job by id."""

    def lease(self, limit: int, *, worker_id: str) -> list[NotificationJob]:
        """Lease up to ``limit`` queued jobs, oldest first."""

    def mark_sent(self, job: NotificationJob) -> NotificationJob:
        """Transition a leased job to ``sent``."""

    def mark_permanent_failure(
        self, job: NotificationJob, *, error: str
    ) -> NotificationJob:
        """Transition a leased job to ``permanent-failure``."""

    def record_failure(self, job: NotificationJob, *, error: str) -> NotificationJob:
        """Count a failed attempt; requeue or fail permanently at the limit."""


__all__ = ["NotificationQueuePort"]
