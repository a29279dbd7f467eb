"""
Customer repository (persistence).

Persistence operations for the Customer domain entity only. It does not enforce
business rules: aggregate maintenance lives in services/customer_account_service.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Tuple
from uuid import UUID, uuid4

from postgrest.exceptions import APIError

from domain.customer import Customer, CustomerType
from domain.errors import InvalidStateError
from domain.time import parse_optional_utc_datetime, to_iso_utc, utc_now
from repositories._response import count_of, is_foreign_key_violation, money_text, rows_of
from repositories.client import get_supabase

_CUSTOMERS_TABLE: str = "customers"

# Profile columns a caller may change directly. Aggregates are excluded on purpose.
PROFILE_FIELDS: Tuple[str, ...] = (
    "name",
    "email",
    "phone",
    "street",
    "city",
    "state",
    "zip_code",
    "country",
    "customer_type",
    "credit_limit",
    "notes",
    "is_active",
)


@dataclass(frozen=True, slots=True)
class CustomerQueryFilters:
    """Filter criteria for customer listings."""
    customer_type: Optional[CustomerType] = None
    is_active: Optional[bool] = None
    search: Optional[str] = None  # name, email or phone


def _row_to_customer(row: Mapping[str, Any]) -> Customer:
    """Convert a Supabase row into a Customer."""

    return Customer(
        customer_id=UUID(str(row["customer_id"])),
        name=str(row["name"]),
        customer_type=CustomerType(str(row.get("customer_type") or CustomerType.RETAIL.value)),
        email=row.get("email"),
        phone=row.get("phone"),
        street=row.get("street"),
        city=row.get("city"),
        state=row.get("state"),
        zip_code=row.get("zip_code"),
        country=row.get("country"),
        credit_limit=Decimal(str(row.get("credit_limit") or "0")),
        outstanding_amount=Decimal(str(row.get("outstanding_amount") or "0")),
        total_purchase=Decimal(str(row.get("total_purchase") or "0")),
        notes=row.get("notes"),
        is_active=bool(row.get("is_active", True)),
        last_purchase_at=parse_optional_utc_datetime(row.get("last_purchase_at_utc")),
        created_at=parse_optional_utc_datetime(row.get("created_at_utc")),
        updated_at=parse_optional_utc_datetime(row.get("updated_at_utc")),
    )


def _profile_payload(fields: Mapping[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key, value in fields.items():
        if key not in PROFILE_FIELDS:
            raise ValueError(f"Not a customer profile field: {key}")
        if isinstance(value, CustomerType):
            value = value.value
        elif isinstance(value, Decimal):
            value = money_text(value)
        payload[key] = value
    return payload


def insert_customer(name: str, **profile: Any) -> Customer:
    """
    Insert a new customer with zeroed aggregates.

    Args:
        name: Display name
        **profile: Any other PROFILE_FIELDS value

    Returns:
        Customer domain model as stored
    """

    customer_id = uuid4()
    now = utc_now()

    payload = _profile_payload({"name": name, **profile})
    payload.update(
        {
            "customer_id": str(customer_id),
            "outstanding_amount": "0",
            "total_purchase": "0",
            "created_at_utc": now.isoformat(),
            "updated_at_utc": now.isoformat(),
        }
    )
    payload.setdefault("customer_type", CustomerType.RETAIL.value)
    payload.setdefault("credit_limit", "0")
    payload.setdefault("is_active", True)

    response = get_supabase().table(_CUSTOMERS_TABLE).insert(payload).execute()
    rows_of(response, "insert customer")
    return _row_to_customer(payload)


def get_customer_by_id(customer_id: UUID) -> Optional[Customer]:
    """
    Get a customer by ID.

    Returns:
        Customer domain model or None if not found
    """

    response = (
        get_supabase()
        .table(_CUSTOMERS_TABLE)
        .select("*")
        .eq("customer_id", str(customer_id))
        .limit(1)
        .execute()
    )
    rows = rows_of(response, "fetch customer")
    if not rows:
        return None
    return _row_to_customer(rows[0])


def list_customers(
    filters: CustomerQueryFilters,
    limit: Optional[int] = 10,
    offset: int = 0,
) -> Tuple[List[Customer], int]:
    """
    List customers, newest first.

    Args:
        filters: Query filters
        limit: Page size, or None for every matching row
        offset: Pagination offset

    Returns:
        (customers on this page, total matching count)
    """

    query = get_supabase().table(_CUSTOMERS_TABLE).select("*", count="exact")

    if filters.customer_type is not None:
        query = query.eq("customer_type", filters.customer_type.value)
    if filters.is_active is not None:
        query = query.eq("is_active", filters.is_active)
    if filters.search:
        pattern = f"%{filters.search}%"
        query = query.or_(f"name.ilike.{pattern},email.ilike.{pattern},phone.ilike.{pattern}")

    query = query.order("created_at_utc", desc=True)
    if limit is not None:
        query = query.range(offset, offset + limit - 1)

    response = query.execute()
    rows = rows_of(response, "list customers")
    return [_row_to_customer(row) for row in rows], count_of(response)


def update_customer_profile(customer_id: UUID, fields: Mapping[str, Any]) -> None:
    """Update profile columns. Raises ValueError for any non-profile column."""

    payload = _profile_payload(fields)
    payload["updated_at_utc"] = utc_now().isoformat()

    response = (
        get_supabase()
        .table(_CUSTOMERS_TABLE)
        .update(payload)
        .eq("customer_id", str(customer_id))
        .execute()
    )
    rows_of(response, "update customer")


def set_customer_aggregates(
    customer_id: UUID,
    outstanding_amount: Decimal,
    total_purchase: Decimal,
    last_purchase_at: Optional[datetime] = None,
    clear_last_purchase: bool = False,
) -> None:
    """
    Overwrite the cached aggregate columns for a customer.

    `last_purchase_at_utc` is written only when `last_purchase_at` is given, or set to
    NULL when `clear_last_purchase` is true.
    """

    now = utc_now()
    payload: dict[str, Any] = {
        "outstanding_amount": money_text(outstanding_amount),
        "total_purchase": money_text(total_purchase),
        "updated_at_utc": now.isoformat(),
    }
    if clear_last_purchase:
        payload["last_purchase_at_utc"] = None
    elif last_purchase_at is not None:
        payload["last_purchase_at_utc"] = to_iso_utc(last_purchase_at, name="last_purchase_at")

    response = (
        get_supabase()
        .table(_CUSTOMERS_TABLE)
        .update(payload)
        .eq("customer_id", str(customer_id))
        .execute()
    )
    rows_of(response, "update customer aggregates")


def delete_customer(customer_id: UUID) -> None:
    """
    Delete a customer row.

    Raises:
        InvalidStateError: sales or payments still reference the customer
    """

    try:
        response = (
            get_supabase()
            .table(_CUSTOMERS_TABLE)
            .delete()
            .eq("customer_id", str(customer_id))
            .execute()
        )
    except APIError as e:
        if is_foreign_key_violation(e):
            raise InvalidStateError("Customer has sales or payments on record and cannot be deleted") from e
        raise RuntimeError(f"Failed to delete customer: {e}") from e
    rows_of(response, "delete customer")


__all__ = [
    "CustomerQueryFilters",
    "PROFILE_FIELDS",
    "delete_customer",
    "get_customer_by_id",
    "insert_customer",
    "list_customers",
    "set_customer_aggregates",
    "update_customer_profile",
]
