"""
Catalog service: products and the stock movements driven by the sale lifecycle.

Stock is moved by read-modify-write against the products table. Each movement
re-reads the product, so a decrement that races another sale still fails with
InsufficientStockError instead of driving stock negative, and registers its inverse
on the surrounding LedgerTransaction.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Iterable, Mapping, Optional
from uuid import UUID

from domain.errors import InsufficientStockError, NotFoundError, ValidationFailedError
from domain.money import ZERO
from domain.product import Product
from domain.sale import SaleItem, quantities_by_product
from repositories.product_repository import (
    get_product_by_id,
    get_products_by_ids,
    insert_product,
    list_products as _list_products,
    set_product_stock,
)
from services.ledger_transaction import LedgerTransaction
from services.pagination import Page, page_window

logger = logging.getLogger(__name__)


def stock_deltas(
    old_items: Iterable[SaleItem],
    new_items: Iterable[SaleItem],
) -> Dict[UUID, Decimal]:
    """
    Per-product extra quantity a revised item list needs.

    Positive values must be taken from stock, negative values go back to it.
    Products whose quantity did not change are omitted.
    """

    old = quantities_by_product(old_items)
    new = quantities_by_product(new_items)
    deltas: Dict[UUID, Decimal] = {}
    for product_id in list(old) + [p for p in new if p not in old]:
        delta = new.get(product_id, ZERO) - old.get(product_id, ZERO)
        if delta != ZERO:
            deltas[product_id] = delta
    return deltas


def require_stock(quantities: Mapping[UUID, Decimal]) -> Dict[UUID, Product]:
    """
    Check that every product exists and holds at least the requested quantity.

    Raises:
        NotFoundError: a product does not exist
        InsufficientStockError: a product holds less than requested
    """

    products = get_products_by_ids(quantities.keys())
    for product_id, quantity in quantities.items():
        product = products.get(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        if quantity > ZERO and not product.has_stock(quantity):
            raise InsufficientStockError(
                product_id, quantity, product.current_stock, product_name=product.name
            )
    return products


def _move_stock(product_id: UUID, change: Decimal, tx: LedgerTransaction) -> None:
    product = get_product_by_id(product_id)
    if product is None:
        raise NotFoundError("Product", product_id)

    new_stock = product.current_stock + change
    if new_stock < ZERO:
        raise InsufficientStockError(
            product_id, -change, product.current_stock, product_name=product.name
        )

    set_product_stock(product_id, new_stock)
    previous = product.current_stock
    tx.on_rollback(
        lambda: set_product_stock(product_id, previous),
        f"restore stock of {product.name}",
    )

    if change < ZERO and new_stock <= product.minimum_stock:
        logger.warning(
            "Product %s is low on stock: %s left (minimum %s)",
            product.name,
            new_stock,
            product.minimum_stock,
        )


def decrement_stock(quantities: Mapping[UUID, Decimal], tx: LedgerTransaction) -> None:
    for product_id, quantity in quantities.items():
        if quantity > ZERO:
            _move_stock(product_id, -quantity, tx)


def increment_stock(quantities: Mapping[UUID, Decimal], tx: LedgerTransaction) -> None:
    for product_id, quantity in quantities.items():
        if quantity > ZERO:
            _move_stock(product_id, quantity, tx)


def apply_stock_deltas(deltas: Mapping[UUID, Decimal], tx: LedgerTransaction) -> None:
    """Take positive deltas from stock and return negative ones."""

    for product_id, delta in deltas.items():
        _move_stock(product_id, -delta, tx)


def create_product(
    name: str,
    current_stock: Decimal = ZERO,
    sku: Optional[str] = None,
    unit: str = "piece",
    selling_price: Decimal = ZERO,
    minimum_stock: Decimal = ZERO,
) -> Product:
    if current_stock < ZERO:
        raise ValidationFailedError("current stock cannot be negative")
    if not name or not name.strip():
        raise ValidationFailedError("product name is required")

    product = insert_product(
        name=name.strip(),
        current_stock=current_stock,
        sku=sku.strip() if sku else None,
        unit=unit,
        selling_price=selling_price,
        minimum_stock=minimum_stock,
    )
    logger.info("Created product %s (%s) with stock %s", product.name, product.product_id, current_stock)
    return product


def get_product(product_id: UUID) -> Product:
    product = get_product_by_id(product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def list_products(search: Optional[str] = None, page: int = 1, limit: int = 10) -> Page[Product]:
    size, offset = page_window(page, limit)
    products, total = _list_products(search=search, limit=size, offset=offset)
    return Page(items=products, page=page, limit=size, total=total)


__all__ = [
    "apply_stock_deltas",
    "create_product",
    "decrement_stock",
    "get_product",
    "increment_stock",
    "list_products",
    "require_stock",
    "stock_deltas",
]
