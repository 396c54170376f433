"""Tests for the content debounce cache."""

import pytest

from src.domain.notification_jobs import NotificationType
from src.services.content_debounce import ContentDebounceCache


def test_identical_message_within_window_is_skipped(debounce, clock) -> None:
    assert debounce.should_skip("R", NotificationType.MESSAGE, "S", "hi") is False
    clock.advance(seconds=5)

    assert debounce.should_skip("R", NotificationType.MESSAGE, "S", "hi") is True


def test_different_message_content_goes_through(debounce) -> None:
    debounce.should_skip("R", NotificationType.MESSAGE, "S", "hi")

    assert debounce.should_skip("R", NotificationType.MESSAGE, "S", "how are you?") is False


def test_same_content_from_other_sender_goes_through(debounce) -> None:
    debounce.should_skip("R", NotificationType.MESSAGE, "S1", "hi")

    assert debounce.should_skip("R", NotificationType.MESSAGE, "S2", "hi") is False


def test_identical_message_after_window_goes_through(debounce, clock) -> None:
    debounce.should_skip("R", NotificationType.MESSAGE, "S", "hi")
    clock.advance(seconds=10)

    assert debounce.should_skip("R", NotificationType.MESSAGE, "S", "hi") is False


def test_empty_message_content_is_never_skipped(debounce) -> None:
    debounce.should_skip("R", NotificationType.MESSAGE, "S", None)

    assert debounce.should_skip("R", NotificationType.MESSAGE, "S", None) is False


def test_repeat_match_within_window_is_skipped(debounce, clock) -> None:
    assert debounce.should_skip("R", NotificationType.MATCH) is False
    clock.advance(seconds=3)

    assert debounce.should_skip("R", NotificationType.MATCH) is True


def test_match_for_other_recipient_goes_through(debounce) -> None:
    debounce.should_skip("R1", NotificationType.MATCH)

    assert debounce.should_skip("R2", NotificationType.MATCH) is False


def test_generic_notifications_are_never_skipped(debounce) -> None:
    debounce.should_skip("R", NotificationType.GENERIC, None, "same")

    assert debounce.should_skip("R", NotificationType.GENERIC, None, "same") is False


def test_accepts_plain_string_types(debounce) -> None:
    debounce.should_skip("R", "match")

    assert debounce.should_skip("R", "match") is True


def test_stale_entries_are_purged_above_capacity(clock) -> None:
    cache = ContentDebounceCache(window_seconds=10, max_entries=3, clock=clock)
    cache.should_skip("R1", NotificationType.MATCH)
    cache.should_skip("R2", NotificationType.MATCH)
    clock.advance(seconds=25)
    cache.should_skip("R3", NotificationType.MATCH)
    cache.should_skip("R4", NotificationType.MATCH)

    assert len(cache) == 2


def test_fresh_entries_survive_purge(clock) -> None:
    cache = ContentDebounceCache(window_seconds=10, max_entries=2, clock=clock)
    for recipient in ("R1", "R2", "R3"):
        cache.should_skip(recipient, NotificationType.MATCH)

    assert len(cache) == 3
    assert cache.should_skip("R1", NotificationType.MATCH) is True


@pytest.mark.parametrize(
    ("window_seconds", "max_entries"),
    [(0, 10), (10, 0)],
)
def test_rejects_invalid_configuration(window_seconds, max_entries) -> None:
    with pytest.raises(ValueError):
        ContentDebounceCache(window_seconds=window_seconds, max_entries=max_entries)
