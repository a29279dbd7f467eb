"""
Sale repository (persistence).

This module provides *only* persistence operations for the Sale domain entity. It
does not compute totals or balances and does not touch customers or stock; it stores
and fetches whatever Sale values the services hand it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Tuple
from uuid import UUID

from postgrest.exceptions import APIError

from domain.errors import ConflictError
from domain.sale import PaymentStatus, Sale, SaleItem, SalePaymentMethod, SaleStatus
from domain.time import parse_optional_utc_datetime, to_iso_utc
from repositories._response import count_of, is_unique_violation, money_text, rows_of
from repositories.client import get_supabase

# Supabase table name for sale records.
# Keep this aligned with schema.sql.
_SALES_TABLE: str = "sales"


@dataclass(frozen=True, slots=True)
class SaleQueryFilters:
    """Filter criteria for sale listings."""
    customer_id: Optional[UUID] = None
    payment_status: Optional[PaymentStatus] = None
    status: Optional[SaleStatus] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    search: Optional[str] = None  # invoice number fragment


def _item_to_json(item: SaleItem) -> dict[str, Any]:
    return {
        "product_id": str(item.product_id),
        "quantity": money_text(item.quantity),
        "unit_price": money_text(item.unit_price),
        "discount": money_text(item.discount),
        "line_total": money_text(item.line_total),
    }


def _item_from_json(data: Mapping[str, Any]) -> SaleItem:
    return SaleItem(
        product_id=UUID(str(data["product_id"])),
        quantity=Decimal(str(data["quantity"])),
        unit_price=Decimal(str(data["unit_price"])),
        discount=Decimal(str(data.get("discount") or "0")),
    )


def _sale_to_row(sale: Sale) -> dict[str, Any]:
    return {
        "sale_id": str(sale.sale_id),
        "invoice_number": sale.invoice_number,
        "customer_id": str(sale.customer_id),
        "items": [_item_to_json(item) for item in sale.items],
        "subtotal": money_text(sale.subtotal),
        "discount": money_text(sale.discount),
        "tax": money_text(sale.tax),
        "total": money_text(sale.total),
        "paid": money_text(sale.paid),
        "balance": money_text(sale.balance),
        "payment_status": sale.payment_status.value,
        "status": sale.status.value,
        "payment_method": sale.payment_method.value,
        "due_date": sale.due_date.isoformat() if sale.due_date else None,
        "notes": sale.notes,
        "created_at_utc": to_iso_utc(sale.created_at, name="created_at") if sale.created_at else None,
        "updated_at_utc": to_iso_utc(sale.updated_at, name="updated_at") if sale.updated_at else None,
    }


def _row_to_sale(row: Mapping[str, Any]) -> Sale:
    """Convert a Supabase row into a Sale."""

    due_date = row.get("due_date")
    return Sale(
        sale_id=UUID(str(row["sale_id"])),
        invoice_number=str(row["invoice_number"]),
        customer_id=UUID(str(row["customer_id"])),
        items=tuple(_item_from_json(item) for item in row.get("items") or []),
        subtotal=Decimal(str(row["subtotal"])),
        discount=Decimal(str(row.get("discount") or "0")),
        tax=Decimal(str(row.get("tax") or "0")),
        total=Decimal(str(row["total"])),
        paid=Decimal(str(row.get("paid") or "0")),
        balance=Decimal(str(row.get("balance") or "0")),
        payment_status=PaymentStatus(str(row["payment_status"])),
        status=SaleStatus(str(row.get("status") or SaleStatus.COMPLETED.value)),
        payment_method=SalePaymentMethod(str(row.get("payment_method") or SalePaymentMethod.CASH.value)),
        due_date=date.fromisoformat(str(due_date)[:10]) if due_date else None,
        notes=row.get("notes"),
        created_at=parse_optional_utc_datetime(row.get("created_at_utc")),
        updated_at=parse_optional_utc_datetime(row.get("updated_at_utc")),
    )


def insert_sale(sale: Sale) -> Sale:
    """
    Insert a new sale.

    Raises:
        ConflictError: the invoice number already exists
    """

    payload = _sale_to_row(sale)
    try:
        response = get_supabase().table(_SALES_TABLE).insert(payload).execute()
    except APIError as e:
        if is_unique_violation(e):
            raise ConflictError(f"Invoice number already exists: {sale.invoice_number}") from e
        raise RuntimeError(f"Failed to record sale: {e}") from e
    rows_of(response, "record sale")
    return sale


def get_sale_by_id(sale_id: UUID) -> Optional[Sale]:
    """
    Retrieve a single sale by its ID.

    Returns:
        Sale or None if not found
    """

    response = (
        get_supabase()
        .table(_SALES_TABLE)
        .select("*")
        .eq("sale_id", str(sale_id))
        .limit(1)
        .execute()
    )
    rows = rows_of(response, "get sale")
    if not rows:
        return None
    return _row_to_sale(rows[0])


def get_sales_by_ids(sale_ids: Iterable[UUID]) -> dict[UUID, Sale]:
    """
    Fetch several sales at once, keyed by ID, in first-seen order of `sale_ids`.

    Missing IDs are absent from the result.
    """

    ordered: List[UUID] = []
    for sale_id in sale_ids:
        if sale_id not in ordered:
            ordered.append(sale_id)
    if not ordered:
        return {}

    response = (
        get_supabase()
        .table(_SALES_TABLE)
        .select("*")
        .in_("sale_id", [str(s) for s in ordered])
        .execute()
    )
    rows = rows_of(response, "get sales")
    found = {sale.sale_id: sale for sale in (_row_to_sale(row) for row in rows)}
    return {sale_id: found[sale_id] for sale_id in ordered if sale_id in found}


def list_sales(
    filters: SaleQueryFilters,
    limit: int = 10,
    offset: int = 0,
) -> Tuple[List[Sale], int]:
    """
    List sales, newest first.

    Returns:
        (sales on this page, total matching count)
    """

    query = get_supabase().table(_SALES_TABLE).select("*", count="exact")

    if filters.customer_id is not None:
        query = query.eq("customer_id", str(filters.customer_id))
    if filters.payment_status is not None:
        query = query.eq("payment_status", filters.payment_status.value)
    if filters.status is not None:
        query = query.eq("status", filters.status.value)
    if filters.created_from is not None:
        query = query.gte("created_at_utc", to_iso_utc(filters.created_from, name="created_from"))
    if filters.created_to is not None:
        query = query.lte("created_at_utc", to_iso_utc(filters.created_to, name="created_to"))
    if filters.search:
        query = query.ilike("invoice_number", f"%{filters.search}%")

    response = (
        query.order("created_at_utc", desc=True)
        .range(offset, offset + limit - 1)
        .execute()
    )
    rows = rows_of(response, "list sales")
    return [_row_to_sale(row) for row in rows], count_of(response)


def list_sales_for_customer(customer_id: UUID) -> List[Sale]:
    """
    Retrieve a customer's non-cancelled sales, oldest first.

    Args:
        customer_id: Customer identifier

    Returns:
        List[Sale] (possibly empty)
    """

    response = (
        get_supabase()
        .table(_SALES_TABLE)
        .select("*")
        .eq("customer_id", str(customer_id))
        .neq("status", SaleStatus.CANCELLED.value)
        .order("created_at_utc")
        .execute()
    )
    rows = rows_of(response, "list customer sales")
    return [_row_to_sale(row) for row in rows]


def save_sale(sale: Sale) -> None:
    """Overwrite every mutable column of an existing sale."""

    payload = _sale_to_row(sale)
    for immutable in ("sale_id", "invoice_number", "customer_id", "created_at_utc"):
        payload.pop(immutable)

    response = (
        get_supabase()
        .table(_SALES_TABLE)
        .update(payload)
        .eq("sale_id", str(sale.sale_id))
        .execute()
    )
    rows_of(response, "update sale")


def delete_sale(sale_id: UUID) -> None:
    """Remove a sale row. Only used to compensate a failed creation."""

    response = (
        get_supabase()
        .table(_SALES_TABLE)
        .delete()
        .eq("sale_id", str(sale_id))
        .execute()
    )
    rows_of(response, "delete sale")


__all__ = [
    "SaleQueryFilters",
    "delete_sale",
    "get_sale_by_id",
    "get_sales_by_ids",
    "insert_sale",
    "list_sales",
    "list_sales_for_customer",
    "save_sale",
]
