"""
Product repository (persistence).

Persistence operations for catalog products. Stock rules (sufficiency checks,
movements) live in services/catalog_service.py.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Tuple
from uuid import UUID, uuid4

from postgrest.exceptions import APIError

from domain.errors import ConflictError
from domain.product import Product
from domain.time import parse_optional_utc_datetime, utc_now
from repositories._response import count_of, is_unique_violation, money_text, rows_of
from repositories.client import get_supabase

_PRODUCTS_TABLE: str = "products"


def _row_to_product(row: Mapping[str, Any]) -> Product:
    """Convert a Supabase row into a Product."""

    return Product(
        product_id=UUID(str(row["product_id"])),
        name=str(row["name"]),
        current_stock=Decimal(str(row.get("current_stock") or "0")),
        sku=row.get("sku"),
        unit=str(row.get("unit") or "piece"),
        selling_price=Decimal(str(row.get("selling_price") or "0")),
        minimum_stock=Decimal(str(row.get("minimum_stock") or "0")),
        is_active=bool(row.get("is_active", True)),
        created_at=parse_optional_utc_datetime(row.get("created_at_utc")),
        updated_at=parse_optional_utc_datetime(row.get("updated_at_utc")),
    )


def insert_product(
    name: str,
    current_stock: Decimal,
    sku: Optional[str] = None,
    unit: str = "piece",
    selling_price: Decimal = Decimal("0"),
    minimum_stock: Decimal = Decimal("0"),
) -> Product:
    """
    Insert a new product.

    Raises:
        ConflictError: the SKU is already used by another product
    """

    product_id = uuid4()
    now = utc_now()

    payload: dict[str, Any] = {
        "product_id": str(product_id),
        "name": name,
        "sku": sku.upper() if sku else None,
        "unit": unit,
        "selling_price": money_text(selling_price),
        "current_stock": money_text(current_stock),
        "minimum_stock": money_text(minimum_stock),
        "is_active": True,
        "created_at_utc": now.isoformat(),
        "updated_at_utc": now.isoformat(),
    }

    product = _row_to_product(payload)

    try:
        response = get_supabase().table(_PRODUCTS_TABLE).insert(payload).execute()
    except APIError as e:
        if is_unique_violation(e):
            raise ConflictError(f"SKU already exists: {payload['sku']}") from e
        raise RuntimeError(f"Failed to insert product: {e}") from e
    rows_of(response, "insert product")
    return product


def get_product_by_id(product_id: UUID) -> Optional[Product]:
    response = (
        get_supabase()
        .table(_PRODUCTS_TABLE)
        .select("*")
        .eq("product_id", str(product_id))
        .limit(1)
        .execute()
    )
    rows = rows_of(response, "fetch product")
    if not rows:
        return None
    return _row_to_product(rows[0])


def get_products_by_ids(product_ids: Iterable[UUID]) -> dict[UUID, Product]:
    """Fetch several products at once, keyed by ID. Missing IDs are simply absent."""

    ids = sorted({str(p) for p in product_ids})
    if not ids:
        return {}

    response = get_supabase().table(_PRODUCTS_TABLE).select("*").in_("product_id", ids).execute()
    rows = rows_of(response, "fetch products")
    products = [_row_to_product(row) for row in rows]
    return {p.product_id: p for p in products}


def list_products(
    search: Optional[str] = None,
    limit: int = 10,
    offset: int = 0,
) -> Tuple[List[Product], int]:
    """List products by name, optionally filtered by name/SKU text search."""

    query = get_supabase().table(_PRODUCTS_TABLE).select("*", count="exact")
    if search:
        pattern = f"%{search}%"
        query = query.or_(f"name.ilike.{pattern},sku.ilike.{pattern}")

    response = query.order("name").range(offset, offset + limit - 1).execute()
    rows = rows_of(response, "list products")
    return [_row_to_product(row) for row in rows], count_of(response)


def set_product_stock(product_id: UUID, current_stock: Decimal) -> None:
    response = (
        get_supabase()
        .table(_PRODUCTS_TABLE)
        .update({"current_stock": money_text(current_stock), "updated_at_utc": utc_now().isoformat()})
        .eq("product_id", str(product_id))
        .execute()
    )
    rows_of(response, "update product stock")


__all__ = [
    "get_product_by_id",
    "get_products_by_ids",
    "insert_product",
    "list_products",
    "set_product_stock",
]
