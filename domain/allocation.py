"""
Domain: Payment allocation planning (pure).

Allocation procedure, applied to requests in the caller's order:
1. The target sale must exist (NotFoundError).
2. It must belong to the paying customer and not be cancelled (InvalidStateError).
3. Its balance, as of the moment the request is reached, must be positive
   (InvalidStateError). A list that pays the same sale twice sees the balance left
   by the first request.
4. The applied amount is min(requested, balance); the excess is dropped from the
   allocation and stays on the payment as unallocated credit.
5. The sale's paid amount grows by the applied amount and its balance and status are
   recomputed.

Planning works on in-memory copies. Nothing here performs I/O; the caller persists the
net changes returned by `net_changes` once planning has fully succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from .errors import InvalidStateError, NotFoundError, ValidationFailedError
from .money import ZERO, is_positive, money_sum
from .payment import Allocation
from .sale import Sale


@dataclass(frozen=True, slots=True)
class AllocationRequest:
    """Caller's wish to apply up to `amount` of a payment to one sale."""

    sale_id: UUID
    amount: Decimal

    def __post_init__(self) -> None:
        if self.amount < ZERO:
            raise ValidationFailedError("allocation amount cannot be negative")


@dataclass(frozen=True, slots=True)
class SaleChange:
    """Before/after pair for one sale touched by an allocation change."""

    before: Sale
    after: Sale

    @property
    def balance_delta(self) -> Decimal:
        return self.after.balance - self.before.balance

    @property
    def paid_delta(self) -> Decimal:
        return self.after.paid - self.before.paid


@dataclass(frozen=True, slots=True)
class AllocationPlan:
    allocations: Tuple[Allocation, ...]
    sales: Mapping[UUID, Sale]

    @property
    def total_allocated(self) -> Decimal:
        return money_sum(a.amount for a in self.allocations)


def validate_requested_total(requests: Sequence[AllocationRequest], payment_amount: Decimal) -> None:
    """Requested allocations may not add up to more than the payment itself."""

    requested = money_sum(r.amount for r in requests)
    if is_positive(requested - payment_amount):
        raise ValidationFailedError(
            f"Allocations total {requested} exceeds payment amount {payment_amount}"
        )


def reverse_allocations(
    allocations: Iterable[Allocation],
    sales: Mapping[UUID, Sale],
    *,
    at: Optional[datetime] = None,
) -> Dict[UUID, Sale]:
    """
    Undo previously applied allocations on copies of the given sales.

    Allocations whose sale is missing or cancelled are skipped: there is no open
    position left to give the amount back to.
    """

    working: Dict[UUID, Sale] = dict(sales)
    for allocation in allocations:
        sale = working.get(allocation.sale_id)
        if sale is None or sale.is_cancelled:
            continue
        working[allocation.sale_id] = sale.with_payment(-allocation.amount, at=at)
    return working


def plan_allocations(
    requests: Sequence[AllocationRequest],
    sales: Mapping[UUID, Sale],
    *,
    customer_id: UUID,
    at: Optional[datetime] = None,
) -> AllocationPlan:
    """
    Run the allocation procedure against copies of `sales`.

    Returns:
        AllocationPlan with the applied (clamped) allocations and the working state
        of every sale after they were applied.

    Raises:
        NotFoundError: a requested sale is not in `sales`
        InvalidStateError: wrong customer, cancelled sale, or nothing left to collect
    """

    working: Dict[UUID, Sale] = dict(sales)
    applied: List[Allocation] = []

    for request in requests:
        sale = working.get(request.sale_id)
        if sale is None:
            raise NotFoundError("Sale", request.sale_id)
        if sale.customer_id != customer_id:
            raise InvalidStateError(
                f"Sale {sale.invoice_number} belongs to a different customer"
            )
        if sale.is_cancelled:
            raise InvalidStateError(f"Sale {sale.invoice_number} is cancelled")
        if not is_positive(sale.balance):
            raise InvalidStateError(f"Sale {sale.invoice_number} has no outstanding balance")

        amount = min(request.amount, sale.balance)
        working[sale.sale_id] = sale.with_payment(amount, at=at)
        applied.append(Allocation(sale_id=sale.sale_id, amount=amount))

    return AllocationPlan(allocations=tuple(applied), sales=working)


def net_changes(before: Mapping[UUID, Sale], after: Mapping[UUID, Sale]) -> List[SaleChange]:
    """Sales whose paid amount differs between the persisted and planned states."""

    changes: List[SaleChange] = []
    for sale_id, original in before.items():
        updated = after.get(sale_id, original)
        if updated.paid != original.paid:
            changes.append(SaleChange(before=original, after=updated))
    return changes


__all__ = [
    "AllocationPlan",
    "AllocationRequest",
    "SaleChange",
    "net_changes",
    "plan_allocations",
    "reverse_allocations",
    "validate_requested_total",
]
