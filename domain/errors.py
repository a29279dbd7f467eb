"""
Domain: Error taxonomy shared by every layer.

- NotFoundError: a referenced customer, product, sale or payment does not exist.
- InvalidStateError: the entity exists but is in a state that forbids the operation
  (cancelled sale, settled sale, allocation across customers).
- InsufficientStockError: a sale asks for more than the catalog holds.
- ConflictError: a unique identifier (invoice or receipt number) already exists.
- ValidationFailedError: malformed input, raised before any side effect.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID


class BillingError(Exception):
    """Base class for expected, caller-facing failures."""


class NotFoundError(BillingError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidStateError(BillingError):
    """Raised when an entity's current state forbids the requested operation."""


class InsufficientStockError(BillingError):
    """Raised when a sale line asks for more quantity than is in stock."""

    def __init__(
        self,
        product_id: UUID,
        requested: Decimal,
        available: Decimal,
        product_name: Optional[str] = None,
    ) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.product_name = product_name
        label = product_name or str(product_id)
        super().__init__(
            f"Insufficient stock for {label}. "
            f"Requested: {requested}, Available: {available}"
        )


class ConflictError(BillingError):
    """Raised when a unique identifier collides with an existing record."""


class ValidationFailedError(BillingError, ValueError):
    """Raised for malformed input; always raised before any mutation starts."""


__all__ = [
    "BillingError",
    "ConflictError",
    "InsufficientStockError",
    "InvalidStateError",
    "NotFoundError",
    "ValidationFailedError",
]
