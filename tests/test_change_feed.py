"""Tests for change-feed dispatch and the notification trigger wiring."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from src.domain.models import ChangeEvent, ChangeKind
from src.use_cases.change_feed import (
    DRAIN_JOB_NAME,
    ChangeFeedDispatcher,
    drain_on_job_created,
)
from src.domain.notification_jobs import JobStatus
from src.use_cases.notification_factories import (
    create_change_feed_dispatcher,
    create_delivery_worker,
    create_job_runner,
    create_notification_components,
)


def _change(collection: str, before=None, after=None, doc_id: str = "d1") -> ChangeEvent:
    return ChangeEvent(collection=collection, document_id=doc_id, before=before, after=after)


@pytest.mark.parametrize(
    ("before", "after", "kind"),
    [
        (None, {"a": 1}, ChangeKind.CREATED),
        ({"a": 1}, {"a": 2}, ChangeKind.UPDATED),
        ({"a": 1}, None, ChangeKind.DELETED),
    ],
)
def test_change_kind(before, after, kind) -> None:
    assert _change("likes", before, after).kind == kind


def test_dispatch_routes_by_collection_and_kind() -> None:
    dispatcher = ChangeFeedDispatcher()
    seen: list[str] = []
    dispatcher.subscribe("likes", lambda change: seen.append("likes"))
    dispatcher.subscribe(
        "messages", lambda change: seen.append("messages"), kinds={ChangeKind.CREATED}
    )

    assert dispatcher.dispatch(_change("messages", {"x": 1}, {"x": 2})) == 0
    assert dispatcher.dispatch(_change("messages", None, {"x": 1})) == 1
    assert dispatcher.dispatch(_change("likes", {"x": 1}, None)) == 1
    assert seen == ["messages", "likes"]


def test_failing_handler_does_not_stop_others() -> None:
    dispatcher = ChangeFeedDispatcher()
    calls: list[str] = []

    def broken(change: ChangeEvent) -> None:
        raise RuntimeError("boom")

    dispatcher.subscribe("likes", broken)
    dispatcher.subscribe("likes", lambda change: calls.append("second"), name="second")

    assert dispatcher.dispatch(_change("likes", None, {})) == 1
    assert calls == ["second"]
    assert [sub.name for sub in dispatcher.subscriptions] == ["broken", "second"]


def test_drain_on_job_created_submits_for_queued_jobs(mocker) -> None:
    runner = mocker.Mock()
    runner.submit.return_value = "bg-1"

    job_id = drain_on_job_created(
        _change("notification_jobs", None, {"status": "queued"}, doc_id="j1"), runner=runner
    )

    assert job_id == "bg-1"
    runner.submit.assert_called_once_with(DRAIN_JOB_NAME, {"trigger_job_id": "j1"})


def test_drain_on_job_created_ignores_other_statuses(mocker) -> None:
    runner = mocker.Mock()

    assert drain_on_job_created(_change("notification_jobs", None, {"status": "sent"}), runner=runner) is None
    runner.submit.assert_not_called()


def _settings() -> SimpleNamespace:
    return SimpleNamespace(
        presence_ttl_seconds=30.0,
        debounce_window_seconds=10.0,
        debounce_max_entries=1000,
        enqueue_dedup_window_seconds=30.0,
        max_attempts=5,
        lease_seconds=120.0,
        drain_batch_size=10,
        staleness_cutoff_hours=24,
    )


@pytest.fixture
def components(store, gateway, clock):
    return create_notification_components(_settings(), store=store, gateway=gateway, clock=clock)


def test_wired_dispatcher_enqueues_match_jobs(components, store) -> None:
    dispatcher = create_change_feed_dispatcher(components)
    change = _change(
        "likes",
        {"event_id": "E1", "liker_session_id": "A", "liked_session_id": "B", "is_mutual": False},
        {"event_id": "E1", "liker_session_id": "A", "liked_session_id": "B", "is_mutual": True},
    )

    assert dispatcher.dispatch(change) == 1
    keys = sorted(doc.data["aggregation_key"] for doc in store.query("notification_jobs"))
    assert keys == ["match:E1:A", "match:E1:B"]


def test_wired_dispatcher_enqueues_message_job_on_create_only(components, store) -> None:
    dispatcher = create_change_feed_dispatcher(components)
    message = {
        "event_id": "E1",
        "from_profile_id": "P1",
        "to_profile_id": "P2",
        "from_session_id": "S1",
        "to_session_id": "S2",
        "content": "hi",
    }

    dispatcher.dispatch(_change("messages", message, {**message, "content": "edited"}, doc_id="M1"))
    assert store.query("notification_jobs") == []

    dispatcher.dispatch(_change("messages", None, message, doc_id="M1"))
    jobs = store.query("notification_jobs")
    assert [doc.data["aggregation_key"] for doc in jobs] == ["message:E1:P2"]


def test_wired_dispatcher_drains_through_runner(components, mocker) -> None:
    runner = mocker.Mock()
    dispatcher = create_change_feed_dispatcher(components, runner=runner)

    assert [sub.name for sub in dispatcher.subscriptions] == [
        "mutual_match",
        "new_message",
        "opportunistic_drain",
    ]
    dispatcher.dispatch(_change("notification_jobs", None, {"status": "queued"}, doc_id="j1"))

    runner.submit.assert_called_once_with(DRAIN_JOB_NAME, {"trigger_job_id": "j1"})


def test_enqueued_jobs_are_drained_right_away(components, store, gateway) -> None:
    components.tokens.save_token("A", "ios", "tok-A")
    components.tokens.save_token("B", "android", "tok-B")
    runner = create_job_runner(create_delivery_worker(components, _settings()))
    dispatcher = create_change_feed_dispatcher(components, runner=runner)

    dispatcher.dispatch(
        _change(
            "likes",
            {"event_id": "E1", "liker_session_id": "A", "liked_session_id": "B", "is_mutual": False},
            {"event_id": "E1", "liker_session_id": "A", "liked_session_id": "B", "is_mutual": True},
        )
    )
    statuses = runner.wait_all(timeout=10)

    assert statuses
    assert all(status["status"] == "succeeded" for status in statuses)
    jobs = store.query("notification_jobs")
    assert [doc.data["status"] for doc in jobs] == [JobStatus.SENT.value] * 2
    assert sorted(token for push in gateway.sent for token in push.tokens) == ["tok-A", "tok-B"]
