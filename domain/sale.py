"""
Domain: Sale ledger entries (invoices).

Rules implemented here:
- line total = unit_price * quantity - line discount, rounded to cents
- subtotal = sum of line totals; total = subtotal - sale discount + tax, rounded to cents
- sale discount, tax and paid figures entered on creation or edit are rounded to cents
- balance = total - paid, snapped to exactly 0 within EPSILON
- payment status is a pure function of (balance, paid):
    balance < -EPSILON             -> overpaid
    |balance| <= EPSILON           -> paid
    balance > EPSILON and paid > 0 -> partial
    balance > EPSILON and paid = 0 -> pending
- balance is recomputed from total and paid on every transition, never adjusted directly.
- cancellation is terminal.

Sales are immutable values: every transition returns a new Sale.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple
from uuid import UUID

from .errors import InvalidStateError, ValidationFailedError
from .money import ZERO, is_negative, is_zero, money_sum, quantize_money, snap_zero
from .time import require_utc_timestamp


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERPAID = "overpaid"


class SaleStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class SalePaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    CREDIT = "credit"
    CHEQUE = "cheque"


def derive_payment_status(balance: Decimal, paid: Decimal) -> PaymentStatus:
    """Payment status for a (balance, paid) pair. Has no memory of earlier states."""

    if is_negative(balance):
        return PaymentStatus.OVERPAID
    if is_zero(balance):
        return PaymentStatus.PAID
    if paid > ZERO:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def settle_balance(total: Decimal, paid: Decimal) -> Tuple[Decimal, PaymentStatus]:
    """Return (balance, payment_status) for the given total and paid amount."""

    balance = snap_zero(total - paid)
    return balance, derive_payment_status(balance, paid)


@dataclass(frozen=True, slots=True)
class SaleItem:
    """One invoice line. Quantities may be fractional (weighed goods)."""

    product_id: UUID
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.quantity <= ZERO:
            raise ValidationFailedError("quantity must be greater than 0")
        if self.unit_price < ZERO:
            raise ValidationFailedError("unit_price cannot be negative")
        if self.discount < ZERO:
            raise ValidationFailedError("line discount cannot be negative")
        if self.line_total < ZERO:
            raise ValidationFailedError("line discount cannot exceed price * quantity")

    @property
    def line_total(self) -> Decimal:
        return quantize_money(self.unit_price * self.quantity - self.discount)


def compute_totals(
    items: Sequence[SaleItem],
    discount: Decimal,
    tax: Decimal,
) -> Tuple[Decimal, Decimal]:
    """
    Compute (subtotal, total) from scratch for a full list of items.

    Raises:
        ValidationFailedError: empty items, negative discount/tax, or a negative total.
    """

    if not items:
        raise ValidationFailedError("items must be a non-empty list")
    if discount < ZERO:
        raise ValidationFailedError("discount cannot be negative")
    if tax < ZERO:
        raise ValidationFailedError("tax cannot be negative")

    subtotal = money_sum(item.line_total for item in items)
    total = quantize_money(subtotal - discount + tax)
    if total < ZERO:
        raise ValidationFailedError("sale discount cannot exceed subtotal plus tax")
    return subtotal, total


def quantities_by_product(items: Iterable[SaleItem]) -> dict[UUID, Decimal]:
    """Total quantity per product across lines (a product may appear on several lines)."""

    totals: dict[UUID, Decimal] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, ZERO) + item.quantity
    return totals


@dataclass(frozen=True, slots=True)
class Sale:
    """
    One invoice with computed totals and its payment position.

    `paid` starts at the amount collected at the counter and then moves with
    payment allocations. `balance` and `payment_status` are derived, never set.
    """

    sale_id: UUID
    invoice_number: str
    customer_id: UUID
    items: Tuple[SaleItem, ...]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    paid: Decimal
    balance: Decimal
    payment_status: PaymentStatus
    status: SaleStatus = SaleStatus.COMPLETED
    payment_method: SalePaymentMethod = SalePaymentMethod.CASH
    due_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @classmethod
    def open(
        cls,
        *,
        sale_id: UUID,
        invoice_number: str,
        customer_id: UUID,
        items: Sequence[SaleItem],
        discount: Decimal = ZERO,
        tax: Decimal = ZERO,
        paid: Decimal = ZERO,
        payment_method: SalePaymentMethod = SalePaymentMethod.CASH,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "Sale":
        """Build a new completed sale, computing totals, balance and status."""

        if paid < ZERO:
            raise ValidationFailedError("paid amount cannot be negative")
        paid = quantize_money(paid)
        discount = quantize_money(discount)
        tax = quantize_money(tax)

        subtotal, total = compute_totals(items, discount, tax)
        balance, payment_status = settle_balance(total, paid)
        return cls(
            sale_id=sale_id,
            invoice_number=invoice_number.upper(),
            customer_id=customer_id,
            items=tuple(items),
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=total,
            paid=paid,
            balance=balance,
            payment_status=payment_status,
            status=SaleStatus.COMPLETED,
            payment_method=payment_method,
            due_date=due_date,
            notes=notes,
            created_at=created_at,
            updated_at=created_at,
        )

    @property
    def is_cancelled(self) -> bool:
        return self.status == SaleStatus.CANCELLED

    def with_payment(self, amount: Decimal, *, at: Optional[datetime] = None) -> "Sale":
        """
        Credit (positive) or reverse (negative) a payment amount against this sale.

        Balance and payment status are recomputed from total and the new paid figure.
        """

        paid = self.paid + amount
        balance, payment_status = settle_balance(self.total, paid)
        return replace(
            self,
            paid=paid,
            balance=balance,
            payment_status=payment_status,
            updated_at=at or self.updated_at,
        )

    def revised(
        self,
        *,
        items: Optional[Sequence[SaleItem]] = None,
        discount: Optional[Decimal] = None,
        tax: Optional[Decimal] = None,
        paid: Optional[Decimal] = None,
        payment_method: Optional[SalePaymentMethod] = None,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> "Sale":
        """
        Return an edited copy of this sale.

        Supplied items replace the existing list entirely. Totals are recomputed when
        items, discount or tax change; balance and status are always recomputed.
        Omitted fields keep their current values.
        """

        if self.is_cancelled:
            raise InvalidStateError(f"Cannot update cancelled sale {self.invoice_number}")

        new_items = tuple(items) if items is not None else self.items
        new_discount = quantize_money(discount) if discount is not None else self.discount
        new_tax = quantize_money(tax) if tax is not None else self.tax
        new_paid = quantize_money(paid) if paid is not None else self.paid
        if new_paid < ZERO:
            raise ValidationFailedError("paid amount cannot be negative")

        if items is not None or discount is not None or tax is not None:
            subtotal, total = compute_totals(new_items, new_discount, new_tax)
        else:
            subtotal, total = self.subtotal, self.total

        balance, payment_status = settle_balance(total, new_paid)
        return replace(
            self,
            items=new_items,
            subtotal=subtotal,
            discount=new_discount,
            tax=new_tax,
            total=total,
            paid=new_paid,
            balance=balance,
            payment_status=payment_status,
            payment_method=payment_method if payment_method is not None else self.payment_method,
            due_date=due_date if due_date is not None else self.due_date,
            notes=notes if notes is not None else self.notes,
            updated_at=at or self.updated_at,
        )

    def cancelled(self, *, at: Optional[datetime] = None) -> "Sale":
        """Return this sale marked cancelled. Totals and paid are kept as history."""

        if self.is_cancelled:
            raise InvalidStateError(f"Sale {self.invoice_number} is already cancelled")
        return replace(self, status=SaleStatus.CANCELLED, updated_at=at or self.updated_at)


__all__ = [
    "PaymentStatus",
    "Sale",
    "SaleItem",
    "SalePaymentMethod",
    "SaleStatus",
    "compute_totals",
    "derive_payment_status",
    "quantities_by_product",
    "settle_balance",
]
