# src/services/api/errors.py
"""
Domain error -> HTTP mapping.
"""

from __future__ import annotations

from fastapi import HTTPException

from src.common.exceptions import (
    ConcurrentModificationError,
    DuplicatePaymentError,
    GeocodingFailed,
    InvalidTransition,
    NotFoundError,
    PaymentVerificationFailed,
    RoadsideError,
    ValidationError,
)
from src.shared.models.common import ErrorResponse


STATUS_CODES: dict[type[RoadsideError], int] = {
    ValidationError: 422,
    GeocodingFailed: 422,
    NotFoundError: 404,
    InvalidTransition: 409,
    ConcurrentModificationError: 409,
    DuplicatePaymentError: 409,
    PaymentVerificationFailed: 402,
}


def to_http_error(error: RoadsideError) -> HTTPException:
    """HTTPException carrying an ErrorResponse body."""
    status_code = 400
    for error_type, code in STATUS_CODES.items():
        if isinstance(error, error_type):
            status_code = code
            break

    body = ErrorResponse(
        error_code=error.error_code,
        message=error.message,
        details={k: str(v) if v is not None else None for k, v in error.details.items()} or None,
    )
    return HTTPException(status_code=status_code, detail=body.model_dump())
