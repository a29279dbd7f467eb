"""
Domain: Customer accounts and their aggregate position.

`outstanding_amount` is signed: positive means the customer owes money, negative means
the customer holds credit from overpayment. It has no floor.

The stored `outstanding_amount` / `total_purchase` are a cache maintained by deltas.
The canonical values are recomputed from the customer's non-cancelled sales
(`summarize_sales`).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID

from .errors import ValidationFailedError
from .money import ZERO, is_negative, is_positive, money_sum, quantize_money
from .sale import PaymentStatus, Sale
from .time import require_utc_timestamp


class CustomerType(str, Enum):
    RETAIL = "retail"
    WHOLESALE = "wholesale"
    BUSINESS = "business"


class CreditStatus(str, Enum):
    CLEAR = "clear"
    WITHIN_LIMIT = "within_limit"
    OVER_LIMIT = "over_limit"


class OverallStatus(str, Enum):
    CLEAR = "clear"
    OUTSTANDING = "outstanding"
    CREDIT = "credit"


def classify_credit(outstanding_amount: Decimal, credit_limit: Decimal) -> CreditStatus:
    """
    Credit classification; informational only, never enforced on sale creation.

    A zero credit limit means "no limit configured", so such customers are never over.
    """

    if not is_positive(outstanding_amount):
        return CreditStatus.CLEAR
    if credit_limit > ZERO and is_positive(outstanding_amount - credit_limit):
        return CreditStatus.OVER_LIMIT
    return CreditStatus.WITHIN_LIMIT


@dataclass(frozen=True, slots=True)
class Customer:
    customer_id: UUID
    name: str
    customer_type: CustomerType = CustomerType.RETAIL
    email: Optional[str] = None
    phone: Optional[str] = None

    # Address
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None

    credit_limit: Decimal = ZERO
    outstanding_amount: Decimal = ZERO
    total_purchase: Decimal = ZERO
    notes: Optional[str] = None
    is_active: bool = True

    # Timestamps
    last_purchase_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationFailedError("customer name is required")
        if self.credit_limit < ZERO:
            raise ValidationFailedError("credit limit cannot be negative")
        for name in ("last_purchase_at", "created_at", "updated_at"):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

    @property
    def credit_status(self) -> CreditStatus:
        return classify_credit(self.outstanding_amount, self.credit_limit)

    @property
    def full_address(self) -> str:
        parts = [self.street, self.city, self.state, self.zip_code]
        return " ".join(p for p in parts if p).strip()


@dataclass(frozen=True, slots=True)
class AccountTotals:
    """Aggregate position recomputed from non-cancelled sales."""

    outstanding_amount: Decimal
    total_purchase: Decimal
    sale_count: int

    def drift_from(self, customer: Customer) -> tuple[Decimal, Decimal]:
        """(outstanding drift, purchase drift) of the stored cache versus these totals."""

        return (
            customer.outstanding_amount - self.outstanding_amount,
            customer.total_purchase - self.total_purchase,
        )


def summarize_sales(sales: Iterable[Sale]) -> AccountTotals:
    active = [s for s in sales if not s.is_cancelled]
    return AccountTotals(
        outstanding_amount=money_sum(s.balance for s in active),
        total_purchase=money_sum(s.total for s in active),
        sale_count=len(active),
    )


@dataclass(frozen=True, slots=True)
class SalesStats:
    total_sales: int
    total_amount: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    paid_sales: int
    pending_sales: int
    overpaid_amount: Decimal
    unpaid_amount: Decimal


def sales_stats(sales: Iterable[Sale]) -> SalesStats:
    active = [s for s in sales if not s.is_cancelled]
    settled = (PaymentStatus.PAID, PaymentStatus.OVERPAID)
    return SalesStats(
        total_sales=len(active),
        total_amount=money_sum(s.total for s in active),
        total_paid=money_sum(s.paid for s in active),
        total_outstanding=money_sum(s.balance for s in active),
        paid_sales=sum(1 for s in active if s.payment_status in settled),
        pending_sales=sum(1 for s in active if s.payment_status not in settled),
        overpaid_amount=money_sum(-s.balance for s in active if s.balance < ZERO),
        unpaid_amount=money_sum(s.balance for s in active if s.balance > ZERO),
    )


def overall_status(stats: SalesStats) -> tuple[OverallStatus, str]:
    """Headline status for a customer statement."""

    if is_positive(stats.total_outstanding):
        return OverallStatus.OUTSTANDING, f"Outstanding: {quantize_money(stats.unpaid_amount)}"
    if is_negative(stats.total_outstanding):
        return OverallStatus.CREDIT, f"Extra paid (Credit): {quantize_money(stats.overpaid_amount)}"
    return OverallStatus.CLEAR, "All payments are clear"


__all__ = [
    "AccountTotals",
    "CreditStatus",
    "Customer",
    "CustomerType",
    "OverallStatus",
    "SalesStats",
    "classify_credit",
    "overall_status",
    "sales_stats",
    "summarize_sales",
]
