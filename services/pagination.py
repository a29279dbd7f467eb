"""Page-number pagination shared by the listing services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, List, TypeVar

from domain.errors import ValidationFailedError

T = TypeVar("T")

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


def page_window(page: int, limit: int) -> tuple[int, int]:
    """Validate page/limit and return (limit, offset)."""

    if page < 1:
        raise ValidationFailedError("page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationFailedError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    return limit, (page - 1) * limit


__all__ = ["MAX_PAGE_SIZE", "Page", "page_window"]
