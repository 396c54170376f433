"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from src.adapters.notification_job_queue import DocumentNotificationJobQueue
from src.adapters.sqlite_document_store import SQLiteDocumentStore
from src.domain.models import PushBatchResult, PushDeliveryReport, PushTicket
from src.domain.notification_jobs import NotificationPayload
from src.services.content_debounce import ContentDebounceCache
from src.services.idempotency_ledger import IdempotencyLedger
from src.services.mute_registry import MuteRegistry
from src.services.notification_analytics import NotificationAnalytics
from src.services.presence_tracker import AppPresenceTracker
from src.services.push_tokens import PushTokenDirectory
from src.workers.notification_delivery import NotificationDeliveryWorker

START_TIME = datetime(2025, 6, 1, 20, 0, tzinfo=UTC)


class FakeClock:
    """Controllable clock shared by the store and every time-windowed rule."""

    def __init__(self, start: datetime = START_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@dataclass
class SentPush:
    tokens: list[str]
    payload: NotificationPayload
    aggregation_key: str
    channel_id: str


@dataclass
class FakePushGateway:
    """Records sends; ``fail_next`` queues outcomes ("error" tickets or exceptions)."""

    sent: list[SentPush] = field(default_factory=list)
    outcomes: list[object] = field(default_factory=list)

    def fail_next(self, outcome: object = "error") -> None:
        self.outcomes.append(outcome)

    def send(
        self,
        tokens: list[str],
        payload: NotificationPayload,
        *,
        aggregation_key: str,
        channel_id: str,
    ) -> PushDeliveryReport:
        self.sent.append(SentPush(list(tokens), payload, aggregation_key, channel_id))
        outcome = self.outcomes.pop(0) if self.outcomes else "ok"
        if isinstance(outcome, Exception):
            raise outcome
        if outcome == "ok":
            tickets = [PushTicket(status="ok", id=f"ticket-{i}") for i in range(len(tokens))]
        else:
            tickets = [
                PushTicket(status="error", message="DeviceNotRegistered")
                for _ in tokens
            ]
        batch = PushBatchResult(status_code=200, tickets=tickets, recipients=len(tokens))
        return PushDeliveryReport(
            sent=sum(1 for ticket in tickets if ticket.ok), batches=[batch]
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path, clock: FakeClock) -> SQLiteDocumentStore:
    return SQLiteDocumentStore(str(tmp_path / "documents.sqlite"), clock=clock)


@pytest.fixture
def gateway() -> FakePushGateway:
    return FakePushGateway()


@pytest.fixture
def ledger(store: SQLiteDocumentStore) -> IdempotencyLedger:
    return IdempotencyLedger(store)


@pytest.fixture
def presence(store: SQLiteDocumentStore, clock: FakeClock) -> AppPresenceTracker:
    return AppPresenceTracker(store, clock=clock)


@pytest.fixture
def debounce(clock: FakeClock) -> ContentDebounceCache:
    return ContentDebounceCache(clock=clock)


@pytest.fixture
def tokens(store: SQLiteDocumentStore) -> PushTokenDirectory:
    return PushTokenDirectory(store)


@pytest.fixture
def mutes(store: SQLiteDocumentStore) -> MuteRegistry:
    return MuteRegistry(store)


@pytest.fixture
def analytics(store: SQLiteDocumentStore, clock: FakeClock) -> NotificationAnalytics:
    return NotificationAnalytics(store, clock=clock)


@pytest.fixture
def queue(
    store: SQLiteDocumentStore, clock: FakeClock, analytics: NotificationAnalytics
) -> DocumentNotificationJobQueue:
    return DocumentNotificationJobQueue(store, clock=clock, analytics=analytics)


@pytest.fixture
def worker(
    queue: DocumentNotificationJobQueue,
    presence: AppPresenceTracker,
    debounce: ContentDebounceCache,
    tokens: PushTokenDirectory,
    gateway: FakePushGateway,
    clock: FakeClock,
) -> NotificationDeliveryWorker:
    return NotificationDeliveryWorker(
        queue=queue,
        presence=presence,
        debounce=debounce,
        tokens=tokens,
        gateway=gateway,
        clock=clock,
        worker_id="worker-test",
    )
