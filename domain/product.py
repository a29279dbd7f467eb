"""
Domain: Catalog products.

Only what the billing engine needs: identity, a selling price hint and the current
stock level that sale creation and cancellation move.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from .errors import ValidationFailedError
from .money import ZERO
from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class Product:
    product_id: UUID
    name: str
    current_stock: Decimal
    sku: Optional[str] = None
    unit: str = "piece"
    selling_price: Decimal = ZERO
    minimum_stock: Decimal = ZERO
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationFailedError("product name is required")
        if self.selling_price < ZERO:
            raise ValidationFailedError("selling price cannot be negative")
        if self.minimum_stock < ZERO:
            raise ValidationFailedError("minimum stock cannot be negative")
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    def has_stock(self, quantity: Decimal) -> bool:
        return self.current_stock >= quantity

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.minimum_stock
