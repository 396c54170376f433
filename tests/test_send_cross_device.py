"""Tests for immediate cross-device notifications."""

from __future__ import annotations

from typing import Any

import pytest

from src.domain.exceptions import PushGatewayError, ValidationError
from src.use_cases.send_cross_device import send_cross_device_notification_use_case


@pytest.fixture
def send(tokens, presence, mutes, debounce, gateway):
    def run(
        notification_type: str,
        title: str,
        body: str | None,
        target: str,
        **kwargs: Any,
    ):
        return send_cross_device_notification_use_case(
            notification_type,
            title,
            body,
            target,
            tokens=tokens,
            presence=presence,
            mutes=mutes,
            debounce=debounce,
            gateway=gateway,
            **kwargs,
        )

    return run


@pytest.fixture
def target_token(tokens) -> None:
    tokens.save_token("T", "android", "tok-T")


def test_sends_to_target_tokens(send, gateway, target_token) -> None:
    result = send("match", "It's a match", "Say hi", "T", sender_session_id="S")

    assert result.success is True
    assert result.skipped is False
    assert result.sent_to_tokens == 1
    push = gateway.sent[0]
    assert push.tokens == ["tok-T"]
    assert push.aggregation_key == "match_S_T"
    assert push.channel_id == "matches"
    assert push.payload.data == {"type": "match"}


def test_message_aggregation_key_uses_conversation(send, gateway, target_token) -> None:
    send("message", "New message", "hi", "T", sender_session_id="S", data={"conversationId": "C1"})

    assert gateway.sent[0].aggregation_key == "message_C1"


def test_explicit_aggregation_key_wins(send, gateway, target_token) -> None:
    send("generic", "Heads up", None, "T", data={"aggregationKey": "custom"})

    assert gateway.sent[0].aggregation_key == "custom"
    assert gateway.sent[0].payload.body == ""


def test_self_target_is_rejected(send, gateway, target_token) -> None:
    result = send("match", "x", None, "T", sender_session_id="T")

    assert result.success is False
    assert result.reason == "Cannot send notification to self"
    assert gateway.sent == []


def test_muted_sender_is_rejected(send, mutes, gateway, target_token) -> None:
    mutes.set_mute("E1", "T", "S", muted=True)

    result = send("message", "x", "hi", "T", sender_session_id="S", data={"event_id": "E1"})

    assert result.success is False
    assert result.reason == "Recipient has muted sender"
    assert gateway.sent == []


def test_no_tokens(send, gateway) -> None:
    result = send("match", "x", None, "T")

    assert result.success is False
    assert result.reason == "No push tokens found for target session"


def test_foreground_target_is_skipped(send, presence, gateway, target_token) -> None:
    presence.record("T", True)

    result = send("match", "x", None, "T")

    assert result.success is True
    assert result.skipped is True
    assert result.reason == "user_in_foreground"
    assert gateway.sent == []


def test_duplicate_message_content_is_skipped(send, gateway, target_token) -> None:
    send("message", "x", "same", "T", sender_session_id="S")

    result = send("message", "x", "same", "T", sender_session_id="S")

    assert result.skipped is True
    assert result.reason == "duplicate_content"
    assert len(gateway.sent) == 1


def test_recent_match_is_skipped(send, gateway, target_token) -> None:
    send("match", "x", None, "T", sender_session_id="S")

    result = send("match", "x", None, "T", sender_session_id="S")

    assert result.reason == "recent_match"
    assert len(gateway.sent) == 1


def test_rejected_tickets_report_failure(send, gateway, target_token) -> None:
    gateway.fail_next("error")

    result = send("generic", "x", "y", "T")

    assert result.success is False
    assert result.reason == "DeviceNotRegistered"


def test_gateway_transport_errors_propagate(send, gateway, target_token) -> None:
    gateway.fail_next(PushGatewayError("timeout"))

    with pytest.raises(PushGatewayError):
        send("generic", "x", "y", "T")


@pytest.mark.parametrize(
    ("notification_type", "title", "target"),
    [("match", "", "T"), ("match", "x", ""), ("like", "x", "T"), ("bogus", "x", "T")],
)
def test_invalid_requests_raise(send, notification_type, title, target) -> None:
    with pytest.raises(ValidationError):
        send(notification_type, title, None, target)
