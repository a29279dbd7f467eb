"""
Payment service: receipts and their allocation across open sales.

Handles:
- Payment creation: allocations applied in the caller's order, each clamped to the
  sale's live balance; the excess stays on the payment as unallocated credit
- Payment update: old allocations are reversed and the new list planned on in-memory
  copies of the sales; only sales whose paid amount actually changes are written
- Allocation of a payment's unallocated credit to further sales

The customer account moves by the sum of the balance changes of the written sales.
All planning (existence, ownership, cancelled targets, clamping) finishes before the
first write of the surrounding LedgerTransaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Sequence
from uuid import UUID, uuid4

from domain.allocation import (
    AllocationRequest,
    SaleChange,
    net_changes,
    plan_allocations,
    reverse_allocations,
    validate_requested_total,
)
from domain.errors import NotFoundError, ValidationFailedError
from domain.money import is_positive, money_sum
from domain.numbering import generate_receipt_number
from domain.payment import Payment, PaymentMethod
from domain.sale import Sale
from domain.time import parse_utc_datetime, utc_now
from repositories.customer_repository import get_customer_by_id
from repositories.payment_repository import (
    PaymentQueryFilters,
    delete_payment,
    get_payment_by_id,
    insert_payment,
    list_payments as _list_payments,
    list_payments_for_customer,
    save_payment,
)
from repositories.sale_repository import get_sales_by_ids, save_sale
from services.customer_account_service import apply_customer_delta, refresh_customer_aggregates
from services.ledger_transaction import LedgerTransaction
from services.pagination import Page, page_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PaymentPatch:
    """
    Partial payment edit. None means "keep the current value".

    `allocations`, when given, replaces the whole allocation list; when omitted the
    existing list is re-applied.
    """
    amount: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    allocations: Optional[Sequence[AllocationRequest]] = None


def _require_payment(payment_id: UUID) -> Payment:
    payment = get_payment_by_id(payment_id)
    if payment is None:
        raise NotFoundError("Payment", payment_id)
    return payment


def _load_sales(sale_ids: Iterable[UUID]) -> Mapping[UUID, Sale]:
    return get_sales_by_ids(sale_ids)


def _persist_sale_changes(changes: Sequence[SaleChange], tx: LedgerTransaction) -> Decimal:
    """Write each changed sale once. Returns the summed balance change."""

    for change in changes:
        save_sale(change.after)
        before = change.before
        tx.on_rollback(lambda before=before: save_sale(before), f"restore sale {before.invoice_number}")
    return money_sum(c.balance_delta for c in changes)


def create_payment(
    customer_id: UUID,
    amount: Decimal,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    allocations: Sequence[AllocationRequest] = (),
    payment_date: Optional[datetime] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
) -> Payment:
    """
    Record a payment and apply its allocations.

    Raises:
        NotFoundError: the customer or a target sale does not exist
        InvalidStateError: a target sale belongs to another customer, is cancelled,
            or has nothing left to collect when its turn comes
        ValidationFailedError: non-positive amount, or allocations adding up to more
            than the payment
        ConflictError: the generated receipt number already exists
    """

    validate_requested_total(allocations, amount)

    with LedgerTransaction(customer_id, "create payment") as tx:
        if get_customer_by_id(customer_id) is None:
            raise NotFoundError("Customer", customer_id)

        now = utc_now()
        sales = _load_sales(r.sale_id for r in allocations)
        plan = plan_allocations(allocations, sales, customer_id=customer_id, at=now)
        payment = Payment(
            payment_id=uuid4(),
            receipt_number=generate_receipt_number(now),
            customer_id=customer_id,
            amount=amount,
            payment_method=payment_method,
            payment_date=parse_utc_datetime(payment_date) if payment_date else now,
            allocations=plan.allocations,
            reference=reference,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        changes = net_changes(sales, plan.sales)

        insert_payment(payment)
        tx.on_rollback(lambda: delete_payment(payment.payment_id), f"delete payment {payment.receipt_number}")

        balance_delta = _persist_sale_changes(changes, tx)
        apply_customer_delta(customer_id, outstanding_delta=balance_delta, tx=tx)
        refresh_customer_aggregates(customer_id, tx)

    logger.info(
        "Recorded payment %s for customer %s: amount=%s allocated=%s remaining=%s",
        payment.receipt_number,
        customer_id,
        payment.amount,
        payment.total_allocated,
        payment.remaining_amount,
    )
    return payment


def update_payment(payment_id: UUID, patch: PaymentPatch) -> Payment:
    """
    Edit a payment's fields and re-plan its allocations.

    The result equals reversing every old allocation and re-applying the new list,
    but sales are written once each and only when their paid amount changes. An
    identical allocation list writes nothing to sales or the customer.

    Raises:
        NotFoundError: the payment or a target sale does not exist
        InvalidStateError: see create_payment
        ValidationFailedError: see create_payment
    """

    customer_id = _require_payment(payment_id).customer_id

    with LedgerTransaction(customer_id, "update payment") as tx:
        payment = _require_payment(payment_id)
        now = utc_now()

        requests: Sequence[AllocationRequest]
        if patch.allocations is None:
            requests = [AllocationRequest(a.sale_id, a.amount) for a in payment.allocations]
        else:
            requests = patch.allocations

        amount = patch.amount if patch.amount is not None else payment.amount
        validate_requested_total(requests, amount)

        sale_ids = [a.sale_id for a in payment.allocations] + [r.sale_id for r in requests]
        sales = _load_sales(sale_ids)
        reversed_sales = reverse_allocations(payment.allocations, sales, at=now)
        plan = plan_allocations(requests, reversed_sales, customer_id=customer_id, at=now)
        changes = net_changes(sales, plan.sales)

        updated = replace(
            payment,
            amount=amount,
            payment_method=patch.payment_method or payment.payment_method,
            payment_date=parse_utc_datetime(patch.payment_date) if patch.payment_date else payment.payment_date,
            reference=patch.reference if patch.reference is not None else payment.reference,
            notes=patch.notes if patch.notes is not None else payment.notes,
            allocations=plan.allocations,
            updated_at=now,
        )

        save_payment(updated)
        tx.on_rollback(lambda: save_payment(payment), f"restore payment {payment.receipt_number}")

        balance_delta = _persist_sale_changes(changes, tx)
        apply_customer_delta(customer_id, outstanding_delta=balance_delta, tx=tx)
        refresh_customer_aggregates(customer_id, tx)

    logger.info(
        "Updated payment %s: amount=%s allocated %s -> %s, %d sale(s) changed",
        updated.receipt_number,
        updated.amount,
        payment.total_allocated,
        updated.total_allocated,
        len(changes),
    )
    return updated


def allocate_unapplied_credit(
    payment_id: UUID,
    allocations: Sequence[AllocationRequest],
) -> Payment:
    """
    Spend a payment's remaining amount on further sales.

    The new requests are appended to the payment's existing allocations and the whole
    list goes through `update_payment`.
    """

    if not allocations:
        raise ValidationFailedError("at least one allocation is required")

    payment = _require_payment(payment_id)
    existing = [AllocationRequest(a.sale_id, a.amount) for a in payment.allocations]
    return update_payment(payment_id, PaymentPatch(allocations=existing + list(allocations)))


def get_payment(payment_id: UUID) -> Payment:
    return _require_payment(payment_id)


def list_payments(filters: PaymentQueryFilters, page: int = 1, limit: int = 10) -> Page[Payment]:
    size, offset = page_window(page, limit)
    payments, total = _list_payments(filters, limit=size, offset=offset)
    return Page(items=payments, page=page, limit=size, total=total)


def list_unallocated_payments(customer_id: UUID) -> List[Payment]:
    """Payments of a customer with unallocated credit left, newest first."""

    if get_customer_by_id(customer_id) is None:
        raise NotFoundError("Customer", customer_id)
    return [p for p in list_payments_for_customer(customer_id) if is_positive(p.remaining_amount)]


__all__ = [
    "PaymentPatch",
    "allocate_unapplied_credit",
    "create_payment",
    "get_payment",
    "list_payments",
    "list_unallocated_payments",
    "update_payment",
]
