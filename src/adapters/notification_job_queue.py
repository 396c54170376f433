"""Notification job queue stored as documents in the document store.

Every state change is a conditional write on the job's ``version`` so that
overlapping drains (scheduled and opportunistic) never process the same job
concurrently:

    queued -> leased(worker, expiry) -> sent | permanent-failure | queued

A lease whose expiry has passed is treated as queued again.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.config.logging_config import get_logger
from src.domain.clock import Clock, utc_now
from src.domain.exceptions import LeaseLostError
from src.domain.notification_constants import (
    ENQUEUE_DEDUP_WINDOW_SECONDS,
    LEASE_SECONDS,
)
from src.domain.notification_jobs import (
    DEFAULT_MAX_ATTEMPTS,
    NOTIFICATION_JOBS_COLLECTION,
    JobStatus,
    NotificationJob,
    NotificationJobCreate,
)
from src.observability.metrics import (
    NOTIFICATION_JOB_OUTCOMES_TOTAL,
    NOTIFICATION_JOBS_ENQUEUED_TOTAL,
    NOTIFICATIONS_SUPPRESSED_TOTAL,
)
from src.ports.document_store import (
    SERVER_TIMESTAMP,
    DocumentStorePort,
    OrderBy,
    RangeFilter,
    RangeOperator,
)
from src.services.notification_analytics import AnalyticsEvent, NotificationAnalytics

logger = get_logger(__name__)

EnqueueListener = Callable[[NotificationJob], object]


class DocumentNotificationJobQueue:
    """``NotificationQueuePort`` implementation over ``DocumentStorePort``."""

    def __init__(
        self,
        store: DocumentStorePort,
        *,
        clock: Clock = utc_now,
        dedup_window_seconds: float = ENQUEUE_DEDUP_WINDOW_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        lease_seconds: float = LEASE_SECONDS,
        analytics: NotificationAnalytics | None = None,
        collection: str = NOTIFICATION_JOBS_COLLECTION,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if lease_seconds <= 0:
            raise ValueError("lease_seconds must be positive")
        self._store = store
        self._clock = clock
        self._dedup_window = timedelta(seconds=dedup_window_seconds)
        self._max_attempts = max_attempts
        self._lease = timedelta(seconds=lease_seconds)
        self._analytics = analytics
        self._collection = collection
        self._enqueue_listeners: list[EnqueueListener] = []

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def add_enqueue_listener(self, listener: EnqueueListener) -> None:
        """Call ``listener`` with every job stored by :meth:`enqueue`.

        Listener failures are logged; the job stays queued for the next drain.
        """

        self._enqueue_listeners.append(listener)

    def enqueue(self, job: NotificationJobCreate) -> NotificationJob | None:
        cutoff = self._clock() - self._dedup_window
        recent = self._store.query(
            self._collection,
            where={
                "aggregation_key": job.aggregation_key,
                "subject_session_id": job.subject_session_id,
            },
            range_filter=RangeFilter("created_at", RangeOperator.GT, cutoff),
            limit=1,
        )
        if recent:
            logger.info(
                "notification_job_duplicate_suppressed",
                aggregation_key=job.aggregation_key,
                subject_session_id=job.subject_session_id,
                existing_job_id=recent[0].id,
            )
            NOTIFICATIONS_SUPPRESSED_TOTAL.labels(reason="enqueue_duplicate").inc()
            self._record_analytics(
                AnalyticsEvent.DUPLICATE_PREVENTED,
                job_type=job.type.value,
                subject_session_id=job.subject_session_id,
                event_id=job.event_id,
                aggregation_key=job.aggregation_key,
            )
            return None

        document: dict[str, Any] = {
            **job.to_document(),
            "attempts": 0,
            "status": JobStatus.QUEUED.value,
            "error": None,
            "version": 0,
            "lease_owner": None,
            "lease_expires_at": None,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        }
        job_id = self._store.add(self._collection, document)
        stored = self.get(job_id)

        logger.info(
            "notification_job_enqueued",
            job_id=job_id,
            type=job.type.value,
            subject_session_id=job.subject_session_id,
            aggregation_key=job.aggregation_key,
        )
        NOTIFICATION_JOBS_ENQUEUED_TOTAL.labels(type=job.type.value).inc()
        self._record_analytics(
            AnalyticsEvent.ENQUEUED,
            job_type=job.type.value,
            job_id=job_id,
            subject_session_id=job.subject_session_id,
            event_id=job.event_id,
        )
        if stored is not None:
            self._notify_enqueued(stored)
        return stored

    def get(self, job_id: str) -> NotificationJob | None:
        data = self._store.get(self._collection, job_id)
        if data is None:
            return None
        return NotificationJob.from_document(job_id, data)

    def lease(self, limit: int, *, worker_id: str) -> list[NotificationJob]:
        """Lease up to ``limit`` jobs, oldest first.

        Candidates are queued jobs plus leased jobs whose lease has expired.
        A candidate taken by another worker between the read and the
        conditional write is skipped.
        """

        if limit <= 0:
            raise ValueError("limit must be positive")

        now = self._clock()
        queued = self._store.query(
            self._collection,
            where={"status": JobStatus.QUEUED.value},
            order_by=OrderBy("created_at"),
            limit=limit,
        )
        expired = self._store.query(
            self._collection,
            where={"status": JobStatus.LEASED.value},
            range_filter=RangeFilter("lease_expires_at", RangeOperator.LTE, now),
            order_by=OrderBy("lease_expires_at"),
            limit=limit,
        )
        candidates = sorted(
            [*queued, *expired],
            key=lambda document: (str(document.data.get("created_at") or ""), document.id),
        )

        leased: list[NotificationJob] = []
        expires_at = now + self._lease
        for document in candidates:
            if len(leased) >= limit:
                break
            try:
                job = NotificationJob.from_document(document.id, document.data)
            except PydanticValidationError as exc:
                self._quarantine(document.id, document.data, str(exc))
                continue

            # Jobs written straight into the collection may carry no version
            acquired = self._store.compare_and_set(
                self._collection,
                job.job_id,
                {"status": job.status.value, "version": document.data.get("version")},
                {
                    "status": JobStatus.LEASED.value,
                    "version": job.version + 1,
                    "lease_owner": worker_id,
                    "lease_expires_at": expires_at,
                    "updated_at": SERVER_TIMESTAMP,
                },
            )
            if not acquired:
                logger.debug("notification_job_lease_contended", job_id=job.job_id)
                continue

            if job.status == JobStatus.LEASED:
                logger.warning(
                    "notification_job_lease_reclaimed",
                    job_id=job.job_id,
                    previous_owner=job.lease_owner,
                )
            leased.append(
                job.model_copy(
                    update={
                        "status": JobStatus.LEASED,
                        "version": job.version + 1,
                        "lease_owner": worker_id,
                        "lease_expires_at": expires_at,
                        "updated_at": now,
                    }
                )
            )

        logger.debug(
            "notification_jobs_leased",
            worker_id=worker_id,
            requested=limit,
            leased=len(leased),
        )
        return leased

    def mark_sent(self, job: NotificationJob) -> NotificationJob:
        updated = self._release(job, status=JobStatus.SENT, error=None)
        NOTIFICATION_JOB_OUTCOMES_TOTAL.labels(type=job.type.value, outcome="sent").inc()
        self._record_analytics(
            AnalyticsEvent.SENT,
            job_type=job.type.value,
            job_id=job.job_id,
            subject_session_id=job.subject_session_id,
            event_id=job.event_id,
            attempts=updated.attempts,
        )
        return updated

    def mark_permanent_failure(
        self, job: NotificationJob, *, error: str
    ) -> NotificationJob:
        updated = self._release(job, status=JobStatus.PERMANENT_FAILURE, error=error)
        self._on_permanent_failure(updated)
        return updated

    def record_failure(self, job: NotificationJob, *, error: str) -> NotificationJob:
        """Count one failed attempt.

        The attempt that reaches the limit forces ``permanent-failure``.
        """

        attempts = job.attempts + 1
        if attempts >= self._max_attempts:
            updated = self._release(
                job,
                status=JobStatus.PERMANENT_FAILURE,
                error=error,
                attempts=self._max_attempts,
            )
            self._on_permanent_failure(updated)
            return updated

        updated = self._release(job, status=JobStatus.QUEUED, error=error, attempts=attempts)
        logger.info(
            "notification_job_retry_scheduled",
            job_id=job.job_id,
            attempts=attempts,
            max_attempts=self._max_attempts,
            error=error,
        )
        NOTIFICATION_JOB_OUTCOMES_TOTAL.labels(type=job.type.value, outcome="retry").inc()
        self._record_analytics(
            AnalyticsEvent.RETRY,
            job_type=job.type.value,
            job_id=job.job_id,
            subject_session_id=job.subject_session_id,
            event_id=job.event_id,
            attempts=attempts,
            error=error,
        )
        return updated

    # Internal helpers -------------------------------------------------

    def _release(
        self,
        job: NotificationJob,
        *,
        status: JobStatus,
        error: str | None,
        attempts: int | None = None,
    ) -> NotificationJob:
        if job.status != JobStatus.LEASED:
            raise LeaseLostError(f"Job {job.job_id} is not leased (status={job.status})")

        next_attempts = job.attempts if attempts is None else attempts
        fields: dict[str, Any] = {
            "status": status.value,
            "error": error,
            "attempts": next_attempts,
            "version": job.version + 1,
            "lease_owner": None,
            "lease_expires_at": None,
            "updated_at": SERVER_TIMESTAMP,
        }
        written = self._store.compare_and_set(
            self._collection,
            job.job_id,
            {
                "status": JobStatus.LEASED.value,
                "version": job.version,
                "lease_owner": job.lease_owner,
            },
            fields,
        )
        if not written:
            raise LeaseLostError(f"Lease on job {job.job_id} was lost")

        return job.model_copy(
            update={
                "status": status,
                "error": error,
                "attempts": next_attempts,
                "version": job.version + 1,
                "lease_owner": None,
                "lease_expires_at": None,
                "updated_at": self._clock(),
            }
        )

    def _on_permanent_failure(self, job: NotificationJob) -> None:
        logger.warning(
            "notification_job_permanently_failed",
            job_id=job.job_id,
            type=job.type.value,
            attempts=job.attempts,
            error=job.error,
        )
        NOTIFICATION_JOB_OUTCOMES_TOTAL.labels(
            type=job.type.value, outcome="permanent_failure"
        ).inc()
        self._record_analytics(
            AnalyticsEvent.PERMANENT_FAILURE,
            job_type=job.type.value,
            job_id=job.job_id,
            subject_session_id=job.subject_session_id,
            event_id=job.event_id,
            attempts=job.attempts,
            error=job.error,
        )

    def _notify_enqueued(self, job: NotificationJob) -> None:
        for listener in self._enqueue_listeners:
            try:
                listener(job)
            except Exception:  # noqa: BLE001
                logger.exception("notification_enqueue_listener_failed", job_id=job.job_id)

    def _quarantine(self, job_id: str, data: dict[str, Any], error: str) -> None:
        logger.error("notification_job_document_invalid", job_id=job_id, error=error)
        self._store.compare_and_set(
            self._collection,
            job_id,
            {"status": data.get("status"), "version": data.get("version")},
            {
                "status": JobStatus.PERMANENT_FAILURE.value,
                "error": "invalid job document",
                "updated_at": SERVER_TIMESTAMP,
            },
        )

    def _record_analytics(
        self,
        event: AnalyticsEvent,
        *,
        job_type: str,
        job_id: str | None = None,
        subject_session_id: str | None = None,
        event_id: str | None = None,
        **extra: Any,
    ) -> None:
        if self._analytics is None:
            return
        self._analytics.record(
            event,
            notification_type=job_type,
            job_id=job_id,
            subject_session_id=subject_session_id,
            event_id=event_id,
            **extra,
        )


__all__ = ["DocumentNotificationJobQueue"]
