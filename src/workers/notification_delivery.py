"""Delivery worker draining the notification job queue."""

from __future__ import annotations

import socket
from dataclasses import dataclass
from datetime import timedelta
from typing import Final
from uuid import uuid4

from src.config.logging_config import get_logger
from src.domain.clock import Clock, utc_now
from src.domain.exceptions import (
    LeaseLostError,
    NonRetryableError,
    NoPushTokensError,
    PushGatewayError,
)
from src.domain.notification_constants import (
    ANDROID_CHANNEL_DEFAULT,
    ANDROID_CHANNEL_MATCHES,
    ANDROID_CHANNEL_MESSAGES,
    CONTENT_DIGEST_KEY,
    DRAIN_BATCH_SIZE,
    STALENESS_CUTOFF_HOURS,
)
from src.domain.notification_jobs import JobStatus, NotificationJob, NotificationType
from src.observability.metrics import NOTIFICATIONS_SUPPRESSED_TOTAL
from src.observability.tracing import correlation_scope, job_scope
from src.ports.notification_queue import NotificationQueuePort
from src.ports.push_gateway import PushGatewayPort
from src.services.content_debounce import ContentDebounceCache
from src.services.presence_tracker import AppPresenceTracker
from src.services.push_tokens import PushTokenDirectory

logger = get_logger(__name__)

_ANDROID_CHANNELS: Final[dict[NotificationType, str]] = {
    NotificationType.MESSAGE: ANDROID_CHANNEL_MESSAGES,
    NotificationType.MATCH: ANDROID_CHANNEL_MATCHES,
}


def android_channel_for(notification_type: NotificationType) -> str:
    return _ANDROID_CHANNELS.get(notification_type, ANDROID_CHANNEL_DEFAULT)


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{uuid4().hex[:8]}"


@dataclass
class DrainResult:
    """Counts for one drain cycle."""

    leased: int = 0
    sent: int = 0
    suppressed: int = 0
    retried: int = 0
    failed: int = 0
    lease_lost: int = 0


class NotificationDeliveryWorker:
    """Leases queued jobs and drives each one to an outcome.

    Per job, in order: staleness cutoff, foreground suppression, content
    debounce, token resolution, gateway send. Job failures never propagate;
    they are recorded on the job document.
    """

    def __init__(
        self,
        *,
        queue: NotificationQueuePort,
        presence: AppPresenceTracker,
        debounce: ContentDebounceCache,
        tokens: PushTokenDirectory,
        gateway: PushGatewayPort,
        clock: Clock = utc_now,
        batch_size: int = DRAIN_BATCH_SIZE,
        staleness_cutoff_hours: int = STALENESS_CUTOFF_HOURS,
        worker_id: str | None = None,
    ) -> None:
        if batch_size <= 0:
            msg = "batch_size must be positive"
            raise ValueError(msg)

        self._queue = queue
        self._presence = presence
        self._debounce = debounce
        self._tokens = tokens
        self._gateway = gateway
        self._clock = clock
        self._batch_size = batch_size
        self._staleness_cutoff_hours = staleness_cutoff_hours
        self._staleness_cutoff = timedelta(hours=staleness_cutoff_hours)
        self.worker_id = worker_id or default_worker_id()

    def process_available_jobs(self) -> DrainResult:
        """Run one drain cycle over at most ``batch_size`` jobs."""

        result = DrainResult()
        with correlation_scope(worker_id=self.worker_id):
            jobs = self._queue.lease(self._batch_size, worker_id=self.worker_id)
            result.leased = len(jobs)
            if not jobs:
                logger.debug("notification_drain_idle")
                return result

            for job in jobs:
                with job_scope(job.job_id):
                    self._process_job(job, result)

            logger.info(
                "notification_drain_completed",
                leased=result.leased,
                sent=result.sent,
                suppressed=result.suppressed,
                retried=result.retried,
                failed=result.failed,
                lease_lost=result.lease_lost,
            )
        return result

    def _process_job(self, job: NotificationJob, result: DrainResult) -> None:
        try:
            self._handle_job(job, result)
        except LeaseLostError:
            logger.warning("notification_job_lease_lost", job_type=job.type.value)
            result.lease_lost += 1
        except Exception:  # noqa: BLE001
            # Outcome write failed; the lease expires and the job is retried.
            logger.exception("notification_job_outcome_write_failed")
            result.failed += 1

    def _handle_job(self, job: NotificationJob, result: DrainResult) -> None:
        now = self._clock()
        if now - job.created_at > self._staleness_cutoff:
            self._queue.mark_permanent_failure(
                job, error=f"Job expired after {self._staleness_cutoff_hours} hours"
            )
            logger.info("notification_job_stale", age_seconds=job.age(now))
            result.failed += 1
            return

        if self._presence.is_foreground(job.subject_session_id):
            self._queue.mark_sent(job)
            logger.info(
                "notification_job_skipped_foreground",
                subject_session_id=job.subject_session_id,
            )
            NOTIFICATIONS_SUPPRESSED_TOTAL.labels(reason="foreground").inc()
            result.suppressed += 1
            return

        # Retries must not be swallowed by the entry their first attempt left.
        if job.attempts == 0 and self._debounce.should_skip(
            job.subject_session_id,
            job.type,
            job.actor_session_id,
            job.payload.data.get(CONTENT_DIGEST_KEY),
        ):
            self._queue.mark_sent(job)
            logger.info(
                "notification_job_skipped_debounce",
                subject_session_id=job.subject_session_id,
            )
            NOTIFICATIONS_SUPPRESSED_TOTAL.labels(reason="debounce").inc()
            result.suppressed += 1
            return

        try:
            self._deliver(job)
        except LeaseLostError:
            raise
        except NonRetryableError as exc:
            self._queue.mark_permanent_failure(job, error=str(exc))
            result.failed += 1
            return
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "notification_delivery_failed",
                attempts=job.attempts + 1,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            updated = self._queue.record_failure(job, error=str(exc))
            if updated.status == JobStatus.PERMANENT_FAILURE:
                result.failed += 1
            else:
                result.retried += 1
            return

        self._queue.mark_sent(job)
        result.sent += 1

    def _deliver(self, job: NotificationJob) -> None:
        tokens = self._tokens.active_tokens(job.subject_session_id)
        if not tokens:
            raise NoPushTokensError(job.subject_session_id)

        report = self._gateway.send(
            tokens,
            job.payload,
            aggregation_key=job.aggregation_key,
            channel_id=android_channel_for(job.type),
        )
        if not report.all_ok:
            raise PushGatewayError(f"Push failed: {report.failure_summary()}")

        logger.info(
            "notification_job_delivered",
            tokens=len(tokens),
            sent=report.sent,
        )


__all__ = [
    "DrainResult",
    "NotificationDeliveryWorker",
    "android_channel_for",
    "default_worker_id",
]
