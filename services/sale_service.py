"""
Sale service: invoice lifecycle.

Handles:
- Sale creation: customer and stock checks, totals, stock decrement, customer delta
- Sale update: full item replacement, stock reconciliation by quantity difference,
  balance/status recomputation, customer delta from the same before/after pair
- Sale cancellation: stock restore, customer delta from the sale's current figures,
  release of every payment allocation that pointed at the sale

Each mutation runs inside one LedgerTransaction; every check happens before the
first write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence
from uuid import UUID, uuid4

from domain.errors import NotFoundError, ValidationFailedError
from domain.money import ZERO, is_positive
from domain.numbering import generate_invoice_number
from domain.sale import Sale, SaleItem, SalePaymentMethod, quantities_by_product
from domain.time import utc_now
from repositories.customer_repository import get_customer_by_id
from repositories.payment_repository import (
    allocated_total_for_sale,
    list_payments_allocated_to_sale,
    save_payment,
)
from repositories.sale_repository import (
    SaleQueryFilters,
    delete_sale,
    get_sale_by_id,
    insert_sale,
    list_sales as _list_sales,
    list_sales_for_customer,
    save_sale,
)
from services.catalog_service import (
    apply_stock_deltas,
    decrement_stock,
    increment_stock,
    require_stock,
    stock_deltas,
)
from services.customer_account_service import apply_customer_delta, refresh_customer_aggregates
from services.ledger_transaction import LedgerTransaction
from services.pagination import Page, page_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SalePatch:
    """
    Partial sale edit. None means "keep the current value".

    `items`, when given, replaces the whole item list.
    """
    items: Optional[Sequence[SaleItem]] = None
    discount: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    paid: Optional[Decimal] = None
    payment_method: Optional[SalePaymentMethod] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


def _require_sale(sale_id: UUID) -> Sale:
    sale = get_sale_by_id(sale_id)
    if sale is None:
        raise NotFoundError("Sale", sale_id)
    return sale


def create_sale(
    customer_id: UUID,
    items: Sequence[SaleItem],
    discount: Decimal = ZERO,
    tax: Decimal = ZERO,
    paid: Decimal = ZERO,
    payment_method: SalePaymentMethod = SalePaymentMethod.CASH,
    due_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> Sale:
    """
    Create an invoice.

    Raises:
        NotFoundError: the customer or a product does not exist
        InsufficientStockError: an item asks for more than is in stock
        ValidationFailedError: empty items, negative amounts
        ConflictError: the generated invoice number already exists
    """

    with LedgerTransaction(customer_id, "create sale") as tx:
        if get_customer_by_id(customer_id) is None:
            raise NotFoundError("Customer", customer_id)

        now = utc_now()
        sale = Sale.open(
            sale_id=uuid4(),
            invoice_number=generate_invoice_number(now),
            customer_id=customer_id,
            items=items,
            discount=discount,
            tax=tax,
            paid=paid,
            payment_method=payment_method,
            due_date=due_date,
            notes=notes,
            created_at=now,
        )
        quantities = quantities_by_product(sale.items)
        require_stock(quantities)

        insert_sale(sale)
        tx.on_rollback(lambda: delete_sale(sale.sale_id), f"delete sale {sale.invoice_number}")

        decrement_stock(quantities, tx)
        apply_customer_delta(
            customer_id,
            outstanding_delta=sale.balance,
            purchase_delta=sale.total,
            last_purchase_at=now,
            tx=tx,
        )
        refresh_customer_aggregates(customer_id, tx)

    logger.info(
        "Created sale %s for customer %s: total=%s paid=%s balance=%s (%s)",
        sale.invoice_number,
        customer_id,
        sale.total,
        sale.paid,
        sale.balance,
        sale.payment_status.value,
    )
    return sale


def update_sale(sale_id: UUID, patch: SalePatch) -> Sale:
    """
    Edit a sale and push the difference onto stock and the customer account.

    Raises:
        NotFoundError: the sale or a newly referenced product does not exist
        InvalidStateError: the sale is cancelled
        InsufficientStockError: the new items need more stock than is available
        ValidationFailedError: invalid amounts, or `paid` below what payments allocated
    """

    customer_id = _require_sale(sale_id).customer_id

    with LedgerTransaction(customer_id, "update sale") as tx:
        sale = _require_sale(sale_id)
        updated = sale.revised(
            items=patch.items,
            discount=patch.discount,
            tax=patch.tax,
            paid=patch.paid,
            payment_method=patch.payment_method,
            due_date=patch.due_date,
            notes=patch.notes,
            at=utc_now(),
        )

        if updated.paid != sale.paid:
            allocated = allocated_total_for_sale(sale_id)
            if is_positive(allocated - updated.paid):
                raise ValidationFailedError(
                    f"paid ({updated.paid}) cannot be less than the amount allocated "
                    f"by payments ({allocated})"
                )

        deltas = stock_deltas(sale.items, updated.items) if patch.items is not None else {}
        require_stock({p: d for p, d in deltas.items() if d > ZERO})

        save_sale(updated)
        tx.on_rollback(lambda: save_sale(sale), f"restore sale {sale.invoice_number}")

        apply_stock_deltas(deltas, tx)
        apply_customer_delta(
            customer_id,
            outstanding_delta=updated.balance - sale.balance,
            purchase_delta=updated.total - sale.total,
            tx=tx,
        )
        refresh_customer_aggregates(customer_id, tx)

    logger.info(
        "Updated sale %s: total %s -> %s, balance %s -> %s (%s)",
        updated.invoice_number,
        sale.total,
        updated.total,
        sale.balance,
        updated.balance,
        updated.payment_status.value,
    )
    return updated


def cancel_sale(sale_id: UUID) -> Sale:
    """
    Cancel a sale.

    The sale's current total and balance leave the customer account, its items go
    back to stock, and allocations pointing at it are released back to their payments
    as unallocated credit.

    Raises:
        NotFoundError: the sale does not exist
        InvalidStateError: the sale is already cancelled
    """

    customer_id = _require_sale(sale_id).customer_id

    with LedgerTransaction(customer_id, "cancel sale") as tx:
        sale = _require_sale(sale_id)
        now = utc_now()
        cancelled = sale.cancelled(at=now)
        payments = list_payments_allocated_to_sale(sale_id)

        save_sale(cancelled)
        tx.on_rollback(lambda: save_sale(sale), f"restore sale {sale.invoice_number}")

        for payment in payments:
            released = payment.allocated_to(sale_id)
            save_payment(payment.without_sale(sale_id, at=now))
            tx.on_rollback(
                lambda payment=payment: save_payment(payment),
                f"restore payment {payment.receipt_number}",
            )
            logger.warning(
                "Released %s of payment %s from cancelled sale %s",
                released,
                payment.receipt_number,
                sale.invoice_number,
            )

        increment_stock(quantities_by_product(sale.items), tx)
        apply_customer_delta(
            customer_id,
            outstanding_delta=-sale.balance,
            purchase_delta=-sale.total,
            tx=tx,
        )
        refresh_customer_aggregates(customer_id, tx)

    logger.info(
        "Cancelled sale %s for customer %s: total=%s balance=%s",
        sale.invoice_number,
        customer_id,
        sale.total,
        sale.balance,
    )
    return cancelled


def get_sale(sale_id: UUID) -> Sale:
    return _require_sale(sale_id)


def list_sales(filters: SaleQueryFilters, page: int = 1, limit: int = 10) -> Page[Sale]:
    size, offset = page_window(page, limit)
    sales, total = _list_sales(filters, limit=size, offset=offset)
    return Page(items=sales, page=page, limit=size, total=total)


def list_pending_sales(customer_id: UUID) -> List[Sale]:
    """Non-cancelled sales of a customer that still have a balance, oldest first."""

    if get_customer_by_id(customer_id) is None:
        raise NotFoundError("Customer", customer_id)
    return [s for s in list_sales_for_customer(customer_id) if is_positive(s.balance)]


__all__ = [
    "SalePatch",
    "cancel_sale",
    "create_sale",
    "get_sale",
    "list_pending_sales",
    "list_sales",
    "update_sale",
]
