"""
Domain: Money helpers (pure).

Amounts are `Decimal`. Totals are chained through line items, discounts and tax, so
"is this zero / positive / negative" is always judged against EPSILON instead of
exact equality.

Invariants:
- A balance within EPSILON of zero is snapped to exactly zero.
- |x| <= EPSILON is zero, x > EPSILON is positive, x < -EPSILON is negative.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Union

from .errors import ValidationFailedError

EPSILON = Decimal("0.01")
ZERO = Decimal("0")
CENT = Decimal("0.01")

MoneyLike = Union[Decimal, int, float, str]


def to_money(value: MoneyLike, *, name: str = "amount") -> Decimal:
    """
    Convert an input value into a Decimal amount.

    Floats go through `str()` so 0.1 becomes Decimal("0.1"), not its binary expansion.
    """

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationFailedError(f"{name} must be a number, got bool")
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValidationFailedError(f"{name} is not a valid amount: {value!r}") from e
    else:
        raise ValidationFailedError(f"Unsupported amount type for {name}: {type(value)!r}")

    if not result.is_finite():
        raise ValidationFailedError(f"{name} must be finite")
    return result


def is_zero(amount: Decimal) -> bool:
    return abs(amount) <= EPSILON


def is_positive(amount: Decimal) -> bool:
    return amount > EPSILON


def is_negative(amount: Decimal) -> bool:
    return amount < -EPSILON


def snap_zero(amount: Decimal) -> Decimal:
    """Return exactly zero when `amount` is within EPSILON of zero."""

    return ZERO if is_zero(amount) else amount


def money_sum(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def quantize_money(amount: Decimal) -> Decimal:
    """Round to two decimals for display and serialization."""

    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


__all__ = [
    "CENT",
    "EPSILON",
    "MoneyLike",
    "ZERO",
    "is_negative",
    "is_positive",
    "is_zero",
    "money_sum",
    "quantize_money",
    "snap_zero",
    "to_money",
]
