"""Factories composing the notification pipeline from settings."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any

from src.adapters.expo_push_client import ExpoPushClient
from src.adapters.job_runner_inprocess import InProcessJobRunner, JobHandler, JobReporter
from src.adapters.notification_job_queue import DocumentNotificationJobQueue
from src.adapters.store_factory import create_document_store
from src.config.settings import Settings
from src.domain.clock import Clock, utc_now
from src.domain.models import ChangeEvent, ChangeKind
from src.domain.notification_constants import LIKES_COLLECTION, MESSAGES_COLLECTION
from src.domain.notification_jobs import NOTIFICATION_JOBS_COLLECTION, NotificationType
from src.ports.document_store import DocumentStorePort
from src.ports.job_runner import JobRunnerPort
from src.ports.push_gateway import PushGatewayPort
from src.services.content_debounce import ContentDebounceCache
from src.services.idempotency_ledger import IdempotencyLedger
from src.services.mute_registry import MuteRegistry
from src.services.notification_analytics import NotificationAnalytics
from src.services.presence_tracker import AppPresenceTracker
from src.services.push_tokens import PushTokenDirectory
from src.use_cases.change_feed import (
    DRAIN_JOB_NAME,
    ChangeFeedDispatcher,
    drain_on_job_created,
    job_created_change,
)
from src.use_cases.detect_mutual_match import detect_mutual_match_use_case
from src.use_cases.detect_new_message import detect_new_message_use_case
from src.use_cases.notify_expiring_events import (
    ExpirationNoticeResult,
    notify_expiring_events_use_case,
)
from src.use_cases.send_cross_device import (
    CrossDeviceResult,
    send_cross_device_notification_use_case,
)
from src.workers.notification_delivery import NotificationDeliveryWorker


@dataclass(frozen=True, slots=True)
class NotificationComponents:
    """Shared, process-wide collaborators of the pipeline."""

    store: DocumentStorePort
    clock: Clock
    ledger: IdempotencyLedger
    presence: AppPresenceTracker
    debounce: ContentDebounceCache
    tokens: PushTokenDirectory
    mutes: MuteRegistry
    analytics: NotificationAnalytics
    queue: DocumentNotificationJobQueue
    gateway: PushGatewayPort


def create_push_gateway(settings: Settings) -> ExpoPushClient:
    token = settings.push_access_token
    return ExpoPushClient(
        url=settings.push_gateway_url,
        access_token=token.get_secret_value() if token else None,
        batch_size=settings.push_batch_size,
        timeout_seconds=settings.push_timeout_seconds,
    )


def create_notification_components(
    settings: Settings,
    *,
    store: DocumentStorePort | None = None,
    gateway: PushGatewayPort | None = None,
    clock: Clock = utc_now,
) -> NotificationComponents:
    """Build every collaborator once; explicit ``store``/``gateway`` win."""

    document_store = store or create_document_store(settings, clock=clock)
    analytics = NotificationAnalytics(document_store, clock=clock)
    return NotificationComponents(
        store=document_store,
        clock=clock,
        ledger=IdempotencyLedger(document_store),
        presence=AppPresenceTracker(
            document_store, ttl_seconds=settings.presence_ttl_seconds, clock=clock
        ),
        debounce=ContentDebounceCache(
            window_seconds=settings.debounce_window_seconds,
            max_entries=settings.debounce_max_entries,
            clock=clock,
        ),
        tokens=PushTokenDirectory(document_store),
        mutes=MuteRegistry(document_store),
        analytics=analytics,
        queue=DocumentNotificationJobQueue(
            document_store,
            clock=clock,
            dedup_window_seconds=settings.enqueue_dedup_window_seconds,
            max_attempts=settings.max_attempts,
            lease_seconds=settings.lease_seconds,
            analytics=analytics,
        ),
        gateway=gateway or create_push_gateway(settings),
    )


def create_delivery_worker(
    components: NotificationComponents,
    settings: Settings,
    *,
    worker_id: str | None = None,
) -> NotificationDeliveryWorker:
    return NotificationDeliveryWorker(
        queue=components.queue,
        presence=components.presence,
        debounce=components.debounce,
        tokens=components.tokens,
        gateway=components.gateway,
        clock=components.clock,
        batch_size=settings.drain_batch_size,
        staleness_cutoff_hours=settings.staleness_cutoff_hours,
        worker_id=worker_id,
    )


def create_drain_handler(worker: NotificationDeliveryWorker) -> JobHandler:
    """Adapt a drain cycle to the background job handler signature."""

    def drain(params: dict[str, object], reporter: JobReporter) -> dict[str, object]:
        result = worker.process_available_jobs()
        reporter.update(progress=1.0, message=f"Leased {result.leased} jobs")
        return {
            "trigger_job_id": params.get("trigger_job_id"),
            "leased": result.leased,
            "sent": result.sent,
            "suppressed": result.suppressed,
            "retried": result.retried,
            "failed": result.failed,
            "lease_lost": result.lease_lost,
        }

    return drain


def create_job_runner(worker: NotificationDeliveryWorker) -> InProcessJobRunner:
    return InProcessJobRunner(
        {DRAIN_JOB_NAME: create_drain_handler(worker)}, coalesce=(DRAIN_JOB_NAME,)
    )


def create_change_feed_dispatcher(
    components: NotificationComponents,
    *,
    runner: JobRunnerPort | None = None,
) -> ChangeFeedDispatcher:
    """Subscribe the trigger detectors (and, with a runner, the drain trigger).

    With a runner, jobs enqueued through ``components.queue`` are fed back
    into the dispatcher as CREATED changes so the drain follows immediately.
    """

    dispatcher = ChangeFeedDispatcher()

    def on_like_written(change: ChangeEvent) -> None:
        detect_mutual_match_use_case(
            change.before,
            change.after,
            ledger=components.ledger,
            presence=components.presence,
            queue=components.queue,
        )

    def on_message_created(change: ChangeEvent) -> None:
        detect_new_message_use_case(
            change.document_id,
            change.after,
            store=components.store,
            ledger=components.ledger,
            presence=components.presence,
            mutes=components.mutes,
            queue=components.queue,
        )

    dispatcher.subscribe(LIKES_COLLECTION, on_like_written, name="mutual_match")
    dispatcher.subscribe(
        MESSAGES_COLLECTION,
        on_message_created,
        kinds={ChangeKind.CREATED},
        name="new_message",
    )
    if runner is not None:
        dispatcher.subscribe(
            NOTIFICATION_JOBS_COLLECTION,
            partial(drain_on_job_created, runner=runner),
            kinds={ChangeKind.CREATED},
            name="opportunistic_drain",
        )
        components.queue.add_enqueue_listener(
            lambda job: dispatcher.dispatch(job_created_change(job))
        )
    return dispatcher


def create_expiration_notifier(
    components: NotificationComponents, settings: Settings
) -> Callable[[], ExpirationNoticeResult]:
    return partial(
        notify_expiring_events_use_case,
        components.store,
        components.queue,
        clock=components.clock,
        lookahead_seconds=settings.expiration_lookahead_seconds,
    )


def create_cross_device_sender(
    components: NotificationComponents,
) -> Callable[..., CrossDeviceResult]:
    def send(
        notification_type: NotificationType | str,
        title: str,
        body: str | None,
        target_session_id: str,
        *,
        sender_session_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> CrossDeviceResult:
        return send_cross_device_notification_use_case(
            notification_type,
            title,
            body,
            target_session_id,
            sender_session_id=sender_session_id,
            data=data,
            tokens=components.tokens,
            presence=components.presence,
            mutes=components.mutes,
            debounce=components.debounce,
            gateway=components.gateway,
        )

    return send


__all__ = [
    "NotificationComponents",
    "create_change_feed_dispatcher",
    "create_cross_device_sender",
    "create_delivery_worker",
    "create_drain_handler",
    "create_expiration_notifier",
    "create_job_runner",
    "create_notification_components",
    "create_push_gateway",
]
