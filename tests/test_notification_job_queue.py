"""Tests for the document-backed notification job queue."""

from __future__ import annotations

import pytest

from src.adapters.notification_job_queue import DocumentNotificationJobQueue
from src.domain.exceptions import LeaseLostError
from src.domain.notification_jobs import (
    JobStatus,
    NotificationJobCreate,
    NotificationPayload,
    NotificationType,
)
from src.ports.document_store import SERVER_TIMESTAMP


def _job(subject: str = "A", key: str | None = None) -> NotificationJobCreate:
    return NotificationJobCreate(
        type=NotificationType.MATCH,
        event_id="E1",
        subject_session_id=subject,
        actor_session_id="B",
        payload=NotificationPayload(title="You got Hooked!", body="Start chatting!"),
        aggregation_key=key or f"match:E1:{subject}",
    )


def _analytics_events(store) -> list[str]:
    return sorted(doc.data["event"] for doc in store.query("notification_analytics"))


def test_enqueue_creates_queued_job(queue, clock) -> None:
    job = queue.enqueue(_job())

    assert job is not None
    assert job.status == JobStatus.QUEUED
    assert job.attempts == 0
    assert job.version == 0
    assert job.error is None
    assert job.created_at == clock()
    assert queue.get(job.job_id) == job


def test_enqueue_within_dedup_window_is_suppressed(store, queue, clock) -> None:
    first = queue.enqueue(_job())
    clock.advance(seconds=29)

    assert first is not None
    assert queue.enqueue(_job()) is None
    assert len(store.query("notification_jobs")) == 1
    assert _analytics_events(store) == ["duplicate_prevented", "enqueued"]


def test_enqueue_after_dedup_window_creates_second_job(store, queue, clock) -> None:
    queue.enqueue(_job())
    clock.advance(seconds=31)

    assert queue.enqueue(_job()) is not None
    assert len(store.query("notification_jobs")) == 2


def test_dedup_is_scoped_to_subject(queue) -> None:
    assert queue.enqueue(_job(subject="A", key="match:E1:shared")) is not None
    assert queue.enqueue(_job(subject="B", key="match:E1:shared")) is not None


def test_enqueue_listeners_see_stored_job(queue) -> None:
    seen = []
    queue.add_enqueue_listener(seen.append)

    job = queue.enqueue(_job())
    assert queue.enqueue(_job()) is None

    assert seen == [job]


def test_failing_enqueue_listener_keeps_job_queued(queue) -> None:
    def explode(job) -> None:
        raise RuntimeError("runner down")

    queue.add_enqueue_listener(explode)

    job = queue.enqueue(_job())

    assert job is not None
    assert queue.get(job.job_id).status == JobStatus.QUEUED


def test_lease_returns_oldest_first_and_marks_leased(queue, clock) -> None:
    first = queue.enqueue(_job("A"))
    clock.advance(seconds=1)
    second = queue.enqueue(_job("B"))

    leased = queue.lease(10, worker_id="w1")

    assert [job.job_id for job in leased] == [first.job_id, second.job_id]
    for job in leased:
        assert job.status == JobStatus.LEASED
        assert job.lease_owner == "w1"
        assert job.version == 1
    stored = queue.get(first.job_id)
    assert stored.status == JobStatus.LEASED
    assert stored.lease_owner == "w1"


def test_lease_respects_limit(queue, clock) -> None:
    for subject in ("A", "B", "C"):
        queue.enqueue(_job(subject))
        clock.advance(seconds=1)

    assert len(queue.lease(2, worker_id="w1")) == 2
    assert len(queue.lease(2, worker_id="w2")) == 1


def test_leased_job_is_not_handed_to_another_worker(queue) -> None:
    queue.enqueue(_job())
    queue.lease(10, worker_id="w1")

    assert queue.lease(10, worker_id="w2") == []


def test_expired_lease_is_reclaimed(queue, clock) -> None:
    queue.enqueue(_job())
    original = queue.lease(10, worker_id="w1")[0]
    clock.advance(seconds=121)

    reclaimed = queue.lease(10, worker_id="w2")

    assert [job.job_id for job in reclaimed] == [original.job_id]
    assert reclaimed[0].lease_owner == "w2"
    assert reclaimed[0].version == original.version + 1


def test_stale_owner_cannot_write_after_reclaim(queue, clock) -> None:
    queue.enqueue(_job())
    original = queue.lease(10, worker_id="w1")[0]
    clock.advance(seconds=121)
    reclaimed = queue.lease(10, worker_id="w2")[0]

    with pytest.raises(LeaseLostError):
        queue.mark_sent(original)

    assert queue.mark_sent(reclaimed).status == JobStatus.SENT


def test_lease_rejects_non_positive_limit(queue) -> None:
    with pytest.raises(ValueError):
        queue.lease(0, worker_id="w1")


def test_mark_sent_is_terminal(store, queue) -> None:
    queue.enqueue(_job())
    job = queue.lease(1, worker_id="w1")[0]

    sent = queue.mark_sent(job)

    assert sent.status == JobStatus.SENT
    assert sent.lease_owner is None
    assert queue.get(job.job_id).status == JobStatus.SENT
    assert queue.lease(10, worker_id="w1") == []
    with pytest.raises(LeaseLostError):
        queue.mark_permanent_failure(sent, error="late")
    with pytest.raises(LeaseLostError):
        queue.mark_sent(job)


def test_record_failure_requeues_with_error(queue) -> None:
    queue.enqueue(_job())
    job = queue.lease(1, worker_id="w1")[0]

    updated = queue.record_failure(job, error="Push failed: boom")

    assert updated.status == JobStatus.QUEUED
    assert updated.attempts == 1
    assert updated.error == "Push failed: boom"
    stored = queue.get(job.job_id)
    assert stored.status == JobStatus.QUEUED
    assert stored.attempts == 1
    assert stored.lease_owner is None


def test_fifth_failure_is_permanent(store, queue) -> None:
    queue.enqueue(_job())
    statuses = []
    for _ in range(5):
        job = queue.lease(1, worker_id="w1")[0]
        statuses.append(queue.record_failure(job, error="gateway down").status)

    assert statuses == [JobStatus.QUEUED] * 4 + [JobStatus.PERMANENT_FAILURE]
    final = queue.get(job.job_id)
    assert final.attempts == 5
    assert final.status == JobStatus.PERMANENT_FAILURE
    assert final.error == "gateway down"
    assert queue.lease(1, worker_id="w1") == []
    assert "permanent_failure" in _analytics_events(store)


def test_custom_max_attempts(store, clock) -> None:
    queue = DocumentNotificationJobQueue(store, clock=clock, max_attempts=1)
    queue.enqueue(_job())
    job = queue.lease(1, worker_id="w1")[0]

    assert queue.record_failure(job, error="x").status == JobStatus.PERMANENT_FAILURE


def test_mark_permanent_failure_keeps_attempts(queue) -> None:
    queue.enqueue(_job())
    job = queue.lease(1, worker_id="w1")[0]

    failed = queue.mark_permanent_failure(job, error="No push tokens found for recipient")

    assert failed.status == JobStatus.PERMANENT_FAILURE
    assert failed.attempts == 0
    assert queue.get(job.job_id).error == "No push tokens found for recipient"


def test_invalid_job_document_is_quarantined(store, queue) -> None:
    store.put(
        "notification_jobs",
        "broken",
        {"status": "queued", "version": 0, "created_at": "2025-06-01T19:00:00.000000Z"},
    )

    assert queue.lease(10, worker_id="w1") == []
    assert store.get("notification_jobs", "broken")["status"] == "permanent-failure"


def _external_job(store, subject: str) -> str:
    return store.add(
        "notification_jobs",
        {
            "type": "generic",
            "subject_session_id": subject,
            "payload": {"title": "Summer Mixer is about to end"},
            "aggregation_key": f"expiration:E1:{subject}",
            "status": "queued",
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        },
    )


def test_externally_written_job_without_version_is_leased(store, queue) -> None:
    job_id = _external_job(store, "A")

    leased = queue.lease(10, worker_id="w1")

    assert [job.job_id for job in leased] == [job_id]
    assert leased[0].version == 1
    stored = store.get("notification_jobs", job_id)
    assert stored["status"] == "leased"
    assert stored["version"] == 1
    assert queue.mark_sent(leased[0]).status == JobStatus.SENT


def test_external_jobs_do_not_starve_the_queue(store, queue, clock) -> None:
    for index in range(10):
        _external_job(store, f"X{index}")
    clock.advance(seconds=1)
    normal = queue.enqueue(_job("A"))

    first = queue.lease(10, worker_id="w1")
    second = queue.lease(10, worker_id="w1")

    assert len(first) == 10
    assert [job.job_id for job in second] == [normal.job_id]


@pytest.mark.parametrize(("max_attempts", "lease_seconds"), [(0, 120), (5, 0)])
def test_rejects_invalid_configuration(store, max_attempts, lease_seconds) -> None:
    with pytest.raises(ValueError):
        DocumentNotificationJobQueue(
            store, max_attempts=max_attempts, lease_seconds=lease_seconds
        )
