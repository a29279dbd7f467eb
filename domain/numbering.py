"""
Domain: Human-readable document numbers.

Format: <PREFIX>-<YYYYMMDD>-<6 hex digits>, e.g. INV-20250101-3FA2C1.
The random suffix keeps concurrent generation collision-unlikely; the unique
constraint in storage is what guarantees uniqueness (a collision is a ConflictError
for the caller to retry).
"""

from __future__ import annotations

import secrets
from datetime import datetime

from .time import require_utc_timestamp

INVOICE_PREFIX = "INV"
RECEIPT_PREFIX = "REC"


def _document_number(prefix: str, issued_at: datetime) -> str:
    require_utc_timestamp("issued_at", issued_at)
    return f"{prefix}-{issued_at:%Y%m%d}-{secrets.token_hex(3).upper()}"


def generate_invoice_number(issued_at: datetime) -> str:
    return _document_number(INVOICE_PREFIX, issued_at)


def generate_receipt_number(issued_at: datetime) -> str:
    return _document_number(RECEIPT_PREFIX, issued_at)
