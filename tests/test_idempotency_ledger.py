"""Tests for the idempotency ledger."""

import threading

import pytest

from src.domain.exceptions import RepositoryError
from src.services.idempotency_ledger import IdempotencyLedger, match_key, message_key


def test_first_claim_wins_and_later_claims_lose(ledger) -> None:
    assert ledger.claim("msg:E1:M1") is True
    assert ledger.claim("msg:E1:M1") is False
    assert ledger.claim("msg:E1:M2") is True


def test_claim_persists_across_ledger_instances(store) -> None:
    assert IdempotencyLedger(store).claim("match:E1:A|B") is True
    assert IdempotencyLedger(store).claim("match:E1:A|B") is False


def test_concurrent_claims_have_exactly_one_winner(ledger) -> None:
    results: list[bool] = []
    lock = threading.Lock()

    def claim() -> None:
        outcome = ledger.claim("msg:E1:race")
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=claim) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
    assert results.count(False) == 7


def test_store_failure_propagates(mocker) -> None:
    store = mocker.Mock()
    store.create.side_effect = RepositoryError("down")

    with pytest.raises(RepositoryError):
        IdempotencyLedger(store).claim("k")


def test_match_key_is_order_independent() -> None:
    assert match_key("E1", "B", "A") == match_key("E1", "A", "B") == "match:E1:A|B"


def test_message_key_format() -> None:
    assert message_key("E1", "M1") == "msg:E1:M1"
