"""
Domain: Payment records (receipts).

A payment is a gross amount received from one customer plus an ordered list of
allocations that pay down specific sales. Allocated amounts need not add up to the
payment amount; the unallocated part stays available as credit for later allocation.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from .errors import ValidationFailedError
from .money import ZERO, money_sum
from .time import require_utc_timestamp


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    ADJUSTMENT = "adjustment"


class PaymentRecordStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


@dataclass(frozen=True, slots=True)
class Allocation:
    """Portion of a payment applied to one sale (the clamped, applied amount)."""

    sale_id: UUID
    amount: Decimal

    def __post_init__(self) -> None:
        if self.amount < ZERO:
            raise ValidationFailedError("allocation amount cannot be negative")


@dataclass(frozen=True, slots=True)
class Payment:
    payment_id: UUID
    receipt_number: str
    customer_id: UUID
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: datetime
    allocations: Tuple[Allocation, ...] = ()
    reference: Optional[str] = None
    notes: Optional[str] = None
    status: PaymentRecordStatus = PaymentRecordStatus.COMPLETED
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.amount <= ZERO:
            raise ValidationFailedError("payment amount must be greater than 0")
        require_utc_timestamp("payment_date", self.payment_date)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def total_allocated(self) -> Decimal:
        return money_sum(a.amount for a in self.allocations)

    @property
    def remaining_amount(self) -> Decimal:
        """Unallocated credit still available for future allocation."""
        return self.amount - self.total_allocated

    def allocated_to(self, sale_id: UUID) -> Decimal:
        return money_sum(a.amount for a in self.allocations if a.sale_id == sale_id)

    def without_sale(self, sale_id: UUID, *, at: Optional[datetime] = None) -> "Payment":
        """Drop every allocation pointing at `sale_id`, returning the amount to credit."""

        kept = tuple(a for a in self.allocations if a.sale_id != sale_id)
        return replace(self, allocations=kept, updated_at=at or self.updated_at)


__all__ = [
    "Allocation",
    "Payment",
    "PaymentMethod",
    "PaymentRecordStatus",
]
