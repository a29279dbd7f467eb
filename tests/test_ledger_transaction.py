"""
Tests for `services/ledger_transaction.py`.

Covers contract rules:
- On failure, compensations run newest first and the original error propagates.
- A failing compensation is logged and does not stop the others.
- Nothing is compensated on success.
- Writers for the same customer are serialized; the lock is re-entrant.
"""

from __future__ import annotations

import logging
import threading
from uuid import UUID

import pytest

from services.ledger_transaction import LedgerTransaction

CUSTOMER = UUID("00000000-0000-0000-0000-0000000000c1")


def test_rollback_runs_in_reverse_and_reraises() -> None:
    undone = []

    with pytest.raises(KeyError):
        with LedgerTransaction(CUSTOMER, "test") as tx:
            tx.on_rollback(lambda: undone.append("first"))
            tx.on_rollback(lambda: undone.append("second"))
            raise KeyError("boom")

    assert undone == ["second", "first"]


def test_failing_compensation_is_logged_and_others_still_run(caplog) -> None:
    undone = []

    def broken() -> None:
        raise RuntimeError("storage down")

    with caplog.at_level(logging.ERROR, logger="services.ledger_transaction"):
        with pytest.raises(ValueError):
            with LedgerTransaction(CUSTOMER, "test") as tx:
                tx.on_rollback(lambda: undone.append("first"))
                tx.on_rollback(broken, "broken step")
                raise ValueError("bad")

    assert undone == ["first"]
    assert "broken step" in caplog.text


def test_success_runs_no_compensation() -> None:
    undone = []
    with LedgerTransaction(CUSTOMER, "test") as tx:
        tx.on_rollback(lambda: undone.append("x"))
    assert undone == []


def test_lock_is_reentrant() -> None:
    with LedgerTransaction(CUSTOMER, "outer"):
        with LedgerTransaction(CUSTOMER, "inner"):
            pass


def test_same_customer_writers_are_serialized() -> None:
    inside = threading.Event()
    release = threading.Event()
    entered_second = threading.Event()

    def first() -> None:
        with LedgerTransaction(CUSTOMER, "first"):
            inside.set()
            release.wait(timeout=5)

    def second() -> None:
        with LedgerTransaction(CUSTOMER, "second"):
            entered_second.set()

    t1 = threading.Thread(target=first)
    t1.start()
    assert inside.wait(timeout=5)

    t2 = threading.Thread(target=second)
    t2.start()
    assert not entered_second.wait(timeout=0.2)

    release.set()
    t1.join(timeout=5)
    t2.join(timeout=5)
    assert entered_second.is_set()


def test_other_customers_are_not_blocked() -> None:
    other_entered = threading.Event()

    def other() -> None:
        with LedgerTransaction(UUID("00000000-0000-0000-0000-0000000000c2"), "other"):
            other_entered.set()

    with LedgerTransaction(CUSTOMER, "holding"):
        thread = threading.Thread(target=other)
        thread.start()
        assert other_entered.wait(timeout=5)
        thread.join(timeout=5)
