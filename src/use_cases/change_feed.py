"""Change-feed dispatch: routes document mutations to trigger handlers.

A handler subscribes to one collection and a set of change kinds. Handlers
run in subscription order; an exception in one handler is logged and does
not prevent the others from running.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from src.config.logging_config import get_logger
from src.domain.models import ChangeEvent, ChangeKind
from src.domain.notification_jobs import (
    NOTIFICATION_JOBS_COLLECTION,
    JobStatus,
    NotificationJob,
)
from src.ports.job_runner import JobRunnerPort

logger = get_logger(__name__)

ChangeHandler = Callable[[ChangeEvent], object]

ALL_KINDS: frozenset[ChangeKind] = frozenset(ChangeKind)
DRAIN_JOB_NAME = "drain_notifications"


@dataclass(frozen=True)
class Subscription:
    name: str
    collection: str
    kinds: frozenset[ChangeKind]
    handler: ChangeHandler


class ChangeFeedDispatcher:
    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def subscribe(
        self,
        collection: str,
        handler: ChangeHandler,
        *,
        kinds: Iterable[ChangeKind] = ALL_KINDS,
        name: str | None = None,
    ) -> Subscription:
        subscription = Subscription(
            name=name or getattr(handler, "__name__", repr(handler)),
            collection=collection,
            kinds=frozenset(kinds),
            handler=handler,
        )
        self._subscriptions.append(subscription)
        return subscription

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        return tuple(self._subscriptions)

    def dispatch(self, change: ChangeEvent) -> int:
        """Invoke every matching handler; return how many ran without error."""

        kind = change.kind
        succeeded = 0
        for subscription in self._subscriptions:
            if subscription.collection != change.collection or kind not in subscription.kinds:
                continue
            try:
                subscription.handler(change)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "change_handler_failed",
                    handler=subscription.name,
                    collection=change.collection,
                    document_id=change.document_id,
                    kind=kind.value,
                )
                continue
            succeeded += 1

        logger.debug(
            "change_dispatched",
            collection=change.collection,
            document_id=change.document_id,
            kind=kind.value,
            handlers=succeeded,
        )
        return succeeded


def job_created_change(job: NotificationJob) -> ChangeEvent:
    """The CREATED change a freshly enqueued job would produce on the feed."""

    return ChangeEvent(
        collection=NOTIFICATION_JOBS_COLLECTION,
        document_id=job.job_id,
        after=job.model_dump(mode="json", exclude={"job_id"}),
    )


def drain_on_job_created(change: ChangeEvent, *, runner: JobRunnerPort) -> str | None:
    """Kick off an opportunistic drain when a queued job is inserted."""

    if change.after is None or change.after.get("status") != JobStatus.QUEUED.value:
        return None
    job_id = runner.submit(DRAIN_JOB_NAME, {"trigger_job_id": change.document_id})
    logger.debug(
        "opportunistic_drain_submitted",
        notification_job_id=change.document_id,
        background_job_id=job_id,
    )
    return job_id


__all__ = [
    "ALL_KINDS",
    "DRAIN_JOB_NAME",
    "ChangeFeedDispatcher",
    "ChangeHandler",
    "Subscription",
    "drain_on_job_created",
    "job_created_change",
]
