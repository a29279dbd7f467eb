"""
Customer account service.

Maintains the cached aggregates on the customer row (`outstanding_amount`,
`total_purchase`) and serves customer reads.

Rules:
- Writers move the cache with signed deltas (`apply_customer_delta`), then call
  `refresh_customer_aggregates`, which recomputes the totals from non-cancelled sales,
  logs any drift beyond EPSILON and overwrites the cache with the recomputed values.
- Every read path substitutes recomputed totals for the cached ones, so the served
  figures never depend on the cache being right.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID

from domain.customer import (
    AccountTotals,
    CreditStatus,
    Customer,
    CustomerType,
    OverallStatus,
    SalesStats,
    overall_status,
    sales_stats,
    summarize_sales,
)
from domain.errors import InvalidStateError, NotFoundError, ValidationFailedError
from domain.money import ZERO, is_positive, is_zero, money_sum, to_money
from domain.payment import Payment
from domain.sale import Sale
from repositories.customer_repository import (
    PROFILE_FIELDS,
    CustomerQueryFilters,
    delete_customer as _delete_customer,
    get_customer_by_id,
    insert_customer,
    list_customers as _list_customers,
    set_customer_aggregates,
    update_customer_profile,
)
from repositories.payment_repository import list_payments_for_customer
from repositories.sale_repository import list_sales_for_customer
from services.ledger_transaction import LedgerTransaction
from services.pagination import Page, page_window

logger = logging.getLogger(__name__)

_REQUIRED_PROFILE_FIELDS = ("name", "customer_type", "credit_limit", "is_active")


@dataclass(frozen=True, slots=True)
class CustomerStatement:
    """Everything the customer detail view shows."""
    customer: Customer
    sales: List[Sale]
    payments: List[Payment]
    stats: SalesStats
    payment_count: int
    payment_total: Decimal
    overall_status: OverallStatus
    status_message: str


def _require_customer(customer_id: UUID) -> Customer:
    customer = get_customer_by_id(customer_id)
    if customer is None:
        raise NotFoundError("Customer", customer_id)
    return customer


def recompute_customer_account(customer_id: UUID) -> AccountTotals:
    """Recompute outstanding / purchase totals from the customer's non-cancelled sales."""

    return summarize_sales(list_sales_for_customer(customer_id))


def with_recomputed_totals(customer: Customer, totals: Optional[AccountTotals] = None) -> Customer:
    """Return `customer` with its cached aggregates replaced by recomputed ones."""

    totals = totals or recompute_customer_account(customer.customer_id)
    return replace(
        customer,
        outstanding_amount=totals.outstanding_amount,
        total_purchase=totals.total_purchase,
    )


def apply_customer_delta(
    customer_id: UUID,
    *,
    outstanding_delta: Decimal = ZERO,
    purchase_delta: Decimal = ZERO,
    last_purchase_at: Optional[datetime] = None,
    tx: LedgerTransaction,
) -> Customer:
    """
    Move the cached aggregates by signed deltas.

    Returns:
        The customer as it was before the delta.
    """

    customer = _require_customer(customer_id)
    if is_zero(outstanding_delta) and is_zero(purchase_delta) and last_purchase_at is None:
        return customer

    set_customer_aggregates(
        customer_id,
        customer.outstanding_amount + outstanding_delta,
        customer.total_purchase + purchase_delta,
        last_purchase_at=last_purchase_at,
    )
    tx.on_rollback(
        lambda: set_customer_aggregates(
            customer_id,
            customer.outstanding_amount,
            customer.total_purchase,
            last_purchase_at=customer.last_purchase_at,
            clear_last_purchase=customer.last_purchase_at is None,
        ),
        f"restore aggregates of customer {customer_id}",
    )
    return customer


def refresh_customer_aggregates(customer_id: UUID, tx: LedgerTransaction) -> AccountTotals:
    """
    Compare the cached aggregates with the recomputed ones and overwrite the cache.

    Drift beyond EPSILON means an earlier write went missing; it is logged, then healed.
    """

    customer = _require_customer(customer_id)
    totals = recompute_customer_account(customer_id)
    outstanding_drift, purchase_drift = totals.drift_from(customer)

    if outstanding_drift == ZERO and purchase_drift == ZERO:
        return totals
    if not (is_zero(outstanding_drift) and is_zero(purchase_drift)):
        logger.warning(
            "Customer %s aggregate drift: outstanding cached=%s recomputed=%s, "
            "total_purchase cached=%s recomputed=%s",
            customer_id,
            customer.outstanding_amount,
            totals.outstanding_amount,
            customer.total_purchase,
            totals.total_purchase,
        )

    set_customer_aggregates(customer_id, totals.outstanding_amount, totals.total_purchase)
    tx.on_rollback(
        lambda: set_customer_aggregates(
            customer_id, customer.outstanding_amount, customer.total_purchase
        ),
        f"restore cached aggregates of customer {customer_id}",
    )
    return totals


def _profile_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize profile input, rejecting aggregate or unknown fields."""

    cleaned: dict[str, Any] = {}
    for key, value in fields.items():
        if key not in PROFILE_FIELDS:
            raise ValidationFailedError(f"Field cannot be set on a customer: {key}")
        if value is None and key in _REQUIRED_PROFILE_FIELDS:
            raise ValidationFailedError(f"{key} cannot be empty")
        if key == "customer_type" and value is not None:
            try:
                value = CustomerType(value)
            except ValueError as e:
                raise ValidationFailedError(f"Unknown customer type: {value}") from e
        if key == "credit_limit" and value is not None:
            value = to_money(value, name="credit_limit")
        if key == "name" and value is not None:
            value = str(value).strip()
        if key == "email" and value:
            value = str(value).strip().lower()
        cleaned[key] = value
    return cleaned


def create_customer(name: str, **profile: Any) -> Customer:
    fields = _profile_fields({"name": name, **profile})
    # Domain validation (name, credit limit) before the insert.
    Customer(customer_id=UUID(int=0), **fields)

    customer = insert_customer(**fields)
    logger.info("Created customer %s (%s)", customer.name, customer.customer_id)
    return customer


def update_customer(customer_id: UUID, fields: Mapping[str, Any]) -> Customer:
    """Update profile fields. Aggregates are not client-settable."""

    cleaned = _profile_fields(fields)
    customer = _require_customer(customer_id)
    updated = replace(customer, **cleaned)

    if cleaned:
        update_customer_profile(customer_id, cleaned)
        logger.info("Updated customer %s: %s", customer_id, ", ".join(sorted(cleaned)))
    return with_recomputed_totals(updated)


def delete_customer(customer_id: UUID) -> None:
    """
    Delete a customer.

    Raises:
        NotFoundError: the customer does not exist
        InvalidStateError: the customer still owes money
    """

    with LedgerTransaction(customer_id, "delete customer"):
        _require_customer(customer_id)
        totals = recompute_customer_account(customer_id)
        if is_positive(totals.outstanding_amount):
            raise InvalidStateError(
                f"Cannot delete customer with outstanding amount {totals.outstanding_amount}"
            )
        _delete_customer(customer_id)
    logger.info("Deleted customer %s", customer_id)


def get_customer(customer_id: UUID) -> Customer:
    return with_recomputed_totals(_require_customer(customer_id))


def list_customers_with_balances(
    filters: CustomerQueryFilters,
    credit_status: Optional[CreditStatus] = None,
    page: int = 1,
    limit: int = 10,
) -> Page[Customer]:
    """
    List customers with recomputed aggregates.

    Credit status depends on the recomputed outstanding amount, so when it is filtered
    on, every matching customer is recomputed and the page is cut in memory.
    """

    size, offset = page_window(page, limit)

    if credit_status is None:
        customers, total = _list_customers(filters, limit=size, offset=offset)
        return Page(
            items=[with_recomputed_totals(c) for c in customers],
            page=page,
            limit=size,
            total=total,
        )

    customers, _ = _list_customers(filters, limit=None)
    matching = [
        c for c in (with_recomputed_totals(c) for c in customers)
        if c.credit_status == credit_status
    ]
    return Page(
        items=matching[offset:offset + size],
        page=page,
        limit=size,
        total=len(matching),
    )


def get_customer_statement(customer_id: UUID) -> CustomerStatement:
    customer = _require_customer(customer_id)
    sales = list_sales_for_customer(customer_id)
    payments = list_payments_for_customer(customer_id)

    stats = sales_stats(sales)
    status, message = overall_status(stats)
    return CustomerStatement(
        customer=with_recomputed_totals(customer, summarize_sales(sales)),
        sales=sales,
        payments=payments,
        stats=stats,
        payment_count=len(payments),
        payment_total=money_sum(p.amount for p in payments),
        overall_status=status,
        status_message=message,
    )


__all__ = [
    "CustomerStatement",
    "apply_customer_delta",
    "create_customer",
    "delete_customer",
    "get_customer",
    "get_customer_statement",
    "list_customers_with_balances",
    "recompute_customer_account",
    "refresh_customer_aggregates",
    "update_customer",
    "with_recomputed_totals",
]
