"""Helpers shared by repository modules for reading PostgREST responses."""

from __future__ import annotations

from typing import Any, List, Mapping

from postgrest.exceptions import APIError

# PostgreSQL SQLSTATEs surfaced to callers.
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


def rows_of(response: Any, action: str) -> List[Mapping[str, Any]]:
    """Return the rows of a response, raising if the response carries an error."""

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


def count_of(response: Any) -> int:
    return getattr(response, "count", None) or 0


def is_unique_violation(error: APIError) -> bool:
    return str(getattr(error, "code", "") or "") == UNIQUE_VIOLATION


def is_foreign_key_violation(error: APIError) -> bool:
    return str(getattr(error, "code", "") or "") == FOREIGN_KEY_VIOLATION


def money_text(value: Any) -> str:
    """Serialize an amount for a numeric column without float rounding."""

    return str(value)
