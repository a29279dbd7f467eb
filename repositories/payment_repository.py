"""
Payment repository (persistence).

Payments live in `payments`; their allocations live in `payment_allocations`, one row
per allocation with its position in the payment's list, so the payments touching a
given sale can be found by `sale_id`.

Persistence only: allocation rules are in domain/allocation.py and
services/payment_service.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from uuid import UUID

from postgrest.exceptions import APIError

from domain.errors import ConflictError
from domain.money import ZERO
from domain.payment import Allocation, Payment, PaymentMethod, PaymentRecordStatus
from domain.time import parse_optional_utc_datetime, parse_utc_datetime, to_iso_utc
from repositories._response import count_of, is_unique_violation, money_text, rows_of
from repositories.client import get_supabase

_PAYMENTS_TABLE: str = "payments"
_ALLOCATIONS_TABLE: str = "payment_allocations"


@dataclass(frozen=True, slots=True)
class PaymentQueryFilters:
    """Filter criteria for payment listings."""
    customer_id: Optional[UUID] = None
    payment_method: Optional[PaymentMethod] = None
    paid_from: Optional[datetime] = None
    paid_to: Optional[datetime] = None
    search: Optional[str] = None  # receipt number fragment


def _payment_to_row(payment: Payment) -> dict[str, Any]:
    return {
        "payment_id": str(payment.payment_id),
        "receipt_number": payment.receipt_number,
        "customer_id": str(payment.customer_id),
        "amount": money_text(payment.amount),
        "payment_method": payment.payment_method.value,
        "payment_date_utc": to_iso_utc(payment.payment_date, name="payment_date"),
        "reference": payment.reference,
        "notes": payment.notes,
        "total_allocated": money_text(payment.total_allocated),
        "status": payment.status.value,
        "created_at_utc": to_iso_utc(payment.created_at, name="created_at") if payment.created_at else None,
        "updated_at_utc": to_iso_utc(payment.updated_at, name="updated_at") if payment.updated_at else None,
    }


def _allocation_rows(payment: Payment) -> List[dict[str, Any]]:
    return [
        {
            "payment_id": str(payment.payment_id),
            "sale_id": str(allocation.sale_id),
            "amount": money_text(allocation.amount),
            "position": position,
        }
        for position, allocation in enumerate(payment.allocations)
    ]


def _row_to_payment(row: Mapping[str, Any], allocations: Iterable[Allocation]) -> Payment:
    """Convert a Supabase row plus its allocation rows into a Payment."""

    return Payment(
        payment_id=UUID(str(row["payment_id"])),
        receipt_number=str(row["receipt_number"]),
        customer_id=UUID(str(row["customer_id"])),
        amount=Decimal(str(row["amount"])),
        payment_method=PaymentMethod(str(row["payment_method"])),
        payment_date=parse_utc_datetime(row["payment_date_utc"]),
        allocations=tuple(allocations),
        reference=row.get("reference"),
        notes=row.get("notes"),
        status=PaymentRecordStatus(str(row.get("status") or PaymentRecordStatus.COMPLETED.value)),
        created_at=parse_optional_utc_datetime(row.get("created_at_utc")),
        updated_at=parse_optional_utc_datetime(row.get("updated_at_utc")),
    )


def _load_allocations(payment_ids: List[str]) -> Dict[str, List[Allocation]]:
    if not payment_ids:
        return {}

    response = (
        get_supabase()
        .table(_ALLOCATIONS_TABLE)
        .select("*")
        .in_("payment_id", payment_ids)
        .order("position")
        .execute()
    )
    rows = rows_of(response, "list payment allocations")

    by_payment: Dict[str, List[Allocation]] = {pid: [] for pid in payment_ids}
    for row in rows:
        by_payment.setdefault(str(row["payment_id"]), []).append(
            Allocation(sale_id=UUID(str(row["sale_id"])), amount=Decimal(str(row["amount"])))
        )
    return by_payment


def _hydrate(rows: List[Mapping[str, Any]]) -> List[Payment]:
    allocations = _load_allocations([str(row["payment_id"]) for row in rows])
    return [_row_to_payment(row, allocations.get(str(row["payment_id"]), [])) for row in rows]


def _insert_allocations(payment: Payment) -> None:
    rows = _allocation_rows(payment)
    if not rows:
        return
    response = get_supabase().table(_ALLOCATIONS_TABLE).insert(rows).execute()
    rows_of(response, "record payment allocations")


def _delete_allocations(payment_id: UUID) -> None:
    response = (
        get_supabase()
        .table(_ALLOCATIONS_TABLE)
        .delete()
        .eq("payment_id", str(payment_id))
        .execute()
    )
    rows_of(response, "delete payment allocations")


def insert_payment(payment: Payment) -> Payment:
    """
    Insert a payment and its allocation rows.

    Raises:
        ConflictError: the receipt number already exists
    """

    try:
        response = get_supabase().table(_PAYMENTS_TABLE).insert(_payment_to_row(payment)).execute()
    except APIError as e:
        if is_unique_violation(e):
            raise ConflictError(f"Receipt number already exists: {payment.receipt_number}") from e
        raise RuntimeError(f"Failed to record payment: {e}") from e
    rows_of(response, "record payment")

    _insert_allocations(payment)
    return payment


def get_payment_by_id(payment_id: UUID) -> Optional[Payment]:
    response = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .select("*")
        .eq("payment_id", str(payment_id))
        .limit(1)
        .execute()
    )
    rows = rows_of(response, "get payment")
    if not rows:
        return None
    return _hydrate(rows)[0]


def list_payments(
    filters: PaymentQueryFilters,
    limit: int = 10,
    offset: int = 0,
) -> Tuple[List[Payment], int]:
    """
    List payments, most recent payment date first.

    Returns:
        (payments on this page, total matching count)
    """

    query = get_supabase().table(_PAYMENTS_TABLE).select("*", count="exact")

    if filters.customer_id is not None:
        query = query.eq("customer_id", str(filters.customer_id))
    if filters.payment_method is not None:
        query = query.eq("payment_method", filters.payment_method.value)
    if filters.paid_from is not None:
        query = query.gte("payment_date_utc", to_iso_utc(filters.paid_from, name="paid_from"))
    if filters.paid_to is not None:
        query = query.lte("payment_date_utc", to_iso_utc(filters.paid_to, name="paid_to"))
    if filters.search:
        query = query.ilike("receipt_number", f"%{filters.search}%")

    response = (
        query.order("payment_date_utc", desc=True)
        .range(offset, offset + limit - 1)
        .execute()
    )
    rows = rows_of(response, "list payments")
    return _hydrate(rows), count_of(response)


def list_payments_for_customer(customer_id: UUID) -> List[Payment]:
    """All payments of a customer, most recent payment date first."""

    response = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .select("*")
        .eq("customer_id", str(customer_id))
        .order("payment_date_utc", desc=True)
        .execute()
    )
    return _hydrate(rows_of(response, "list customer payments"))


def list_payments_allocated_to_sale(sale_id: UUID) -> List[Payment]:
    """Payments holding at least one allocation to `sale_id`."""

    response = (
        get_supabase()
        .table(_ALLOCATIONS_TABLE)
        .select("payment_id")
        .eq("sale_id", str(sale_id))
        .execute()
    )
    payment_ids = sorted({str(row["payment_id"]) for row in rows_of(response, "list sale allocations")})
    if not payment_ids:
        return []

    response = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .select("*")
        .in_("payment_id", payment_ids)
        .execute()
    )
    return _hydrate(rows_of(response, "get payments"))


def allocated_total_for_sale(sale_id: UUID) -> Decimal:
    """Sum of every payment allocation currently applied to `sale_id`."""

    response = (
        get_supabase()
        .table(_ALLOCATIONS_TABLE)
        .select("amount")
        .eq("sale_id", str(sale_id))
        .execute()
    )
    rows = rows_of(response, "list sale allocations")
    return sum((Decimal(str(row["amount"])) for row in rows), ZERO)


def save_payment(payment: Payment) -> None:
    """Overwrite the payment's scalar columns and replace its allocation rows."""

    payload = _payment_to_row(payment)
    for immutable in ("payment_id", "receipt_number", "customer_id", "created_at_utc"):
        payload.pop(immutable)

    response = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .update(payload)
        .eq("payment_id", str(payment.payment_id))
        .execute()
    )
    rows_of(response, "update payment")

    _delete_allocations(payment.payment_id)
    _insert_allocations(payment)


def delete_payment(payment_id: UUID) -> None:
    """Remove a payment and its allocations. Only used to compensate a failed creation."""

    _delete_allocations(payment_id)
    response = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .delete()
        .eq("payment_id", str(payment_id))
        .execute()
    )
    rows_of(response, "delete payment")


__all__ = [
    "PaymentQueryFilters",
    "allocated_total_for_sale",
    "delete_payment",
    "get_payment_by_id",
    "insert_payment",
    "list_payments",
    "list_payments_allocated_to_sale",
    "list_payments_for_customer",
    "save_payment",
]
