"""Tests for the mute registry."""

import pytest

from src.domain.exceptions import ValidationError


def test_mute_then_unmute(mutes) -> None:
    record = mutes.set_mute("E1", "R", "S", muted=True)

    assert record.document_id == "E1_R_S"
    assert mutes.is_muted("E1", "R", "S") is True

    mutes.set_mute("E1", "R", "S", muted=False)

    assert mutes.is_muted("E1", "R", "S") is False


def test_mute_is_directional_and_per_event(mutes) -> None:
    mutes.set_mute("E1", "R", "S", muted=True)

    assert mutes.is_muted("E1", "S", "R") is False
    assert mutes.is_muted("E2", "R", "S") is False


def test_cannot_mute_yourself(mutes) -> None:
    with pytest.raises(ValidationError, match="Cannot mute yourself"):
        mutes.set_mute("E1", "R", "R", muted=True)


def test_missing_identifiers_are_rejected(mutes) -> None:
    with pytest.raises(ValidationError):
        mutes.set_mute("", "R", "S", muted=True)
