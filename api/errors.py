"""
Translation of service errors into HTTP errors.

- NotFoundError -> 404
- InvalidStateError, InsufficientStockError, ValidationFailedError -> 400
- ConflictError -> 409
- anything else -> 500, logged with its traceback
"""

import logging

from fastapi import HTTPException

from domain.errors import (
    BillingError,
    ConflictError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (InsufficientStockError, 400),
    (InvalidStateError, 400),
    (ValidationFailedError, 400),
)


def http_error(error: Exception, action: str) -> HTTPException:
    """Build the HTTPException a router raises for `error` while doing `action`."""

    if isinstance(error, HTTPException):
        return error

    if isinstance(error, BillingError):
        for error_type, status_code in _STATUS_BY_ERROR:
            if isinstance(error, error_type):
                return HTTPException(status_code=status_code, detail=str(error))

    logger.exception("Unexpected error while trying to %s", action)
    return HTTPException(
        status_code=500,
        detail=f"Failed to {action}: {str(error)}"
    )
