"""
Unit of work for multi-entity ledger mutations.

Every operation that touches more than one of sale / payment / customer / stock runs
inside a LedgerTransaction:

- writers for the same customer are serialized by a per-customer re-entrant lock;
- each write registers an undo callable right after it succeeds;
- if the body raises, the undo callables run newest first and the original exception
  propagates. A failing undo is logged and the remaining undos still run.

Validation belongs before the first write; the undo log only covers storage effects.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple
from uuid import UUID

logger = logging.getLogger(__name__)

Undo = Callable[[], None]

_registry_lock = threading.Lock()
_customer_locks: Dict[UUID, threading.RLock] = {}


def _lock_for(customer_id: UUID) -> threading.RLock:
    with _registry_lock:
        lock = _customer_locks.get(customer_id)
        if lock is None:
            lock = threading.RLock()
            _customer_locks[customer_id] = lock
        return lock


class LedgerTransaction:
    """
    Context manager grouping the writes of one ledger operation.

    Usage:
        with LedgerTransaction(customer_id, "create sale") as tx:
            insert_sale(sale)
            tx.on_rollback(lambda: delete_sale(sale.sale_id))
    """

    def __init__(self, customer_id: UUID, operation: str) -> None:
        self.customer_id = customer_id
        self.operation = operation
        self._lock = _lock_for(customer_id)
        self._undo: List[Tuple[str, Undo]] = []

    def __enter__(self) -> "LedgerTransaction":
        self._lock.acquire()
        self._undo = []
        return self

    def on_rollback(self, undo: Undo, description: Optional[str] = None) -> None:
        """Register the compensation for a write that has just succeeded."""

        self._undo.append((description or getattr(undo, "__name__", "undo"), undo))

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is not None:
                self._rollback(exc)
        finally:
            self._undo = []
            self._lock.release()
        return False

    def _rollback(self, exc: BaseException) -> None:
        if not self._undo:
            return

        logger.warning(
            "Rolling back %s for customer %s after %s: %s (%d step(s))",
            self.operation,
            self.customer_id,
            type(exc).__name__,
            exc,
            len(self._undo),
        )
        for description, undo in reversed(self._undo):
            try:
                undo()
            except Exception:
                logger.exception(
                    "Compensation %r failed while rolling back %s for customer %s",
                    description,
                    self.operation,
                    self.customer_id,
                )


__all__ = ["LedgerTransaction"]
