"""Tests for log processors."""

from src.config.logging_config import add_app_context, mask_push_token, mask_push_tokens


def test_mask_push_token_keeps_tail() -> None:
    message = '"ExponentPushToken[abcdefgh1234]" is not a registered push notification recipient'

    assert mask_push_token(message) == (
        '"ExponentPushToken[***1234]" is not a registered push notification recipient'
    )


def test_mask_push_tokens_processor_covers_strings_and_lists() -> None:
    event = {
        "event": "notification_delivery_failed",
        "error": "Push failed: ExpoPushToken[zzzz9999]",
        "tokens": ["ExponentPushToken[aaaa1111]", "ExponentPushToken[bbbb2222]"],
        "attempts": 2,
    }

    masked = mask_push_tokens(None, "warning", event)

    assert masked["error"] == "Push failed: ExpoPushToken[***9999]"
    assert masked["tokens"] == ["ExponentPushToken[***1111]", "ExponentPushToken[***2222]"]
    assert masked["attempts"] == 2


def test_app_context_is_added() -> None:
    assert add_app_context(None, "info", {"event": "x"})["app"] == "hooked_notifications"
