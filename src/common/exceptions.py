# src/common/exceptions.py
"""
Domain errors of the request lifecycle engine.

Validation and not-found errors surface to the caller right away.
ConcurrentModificationError is retried locally before it is surfaced.
NoProviderAvailable and GeocodingFailed are recoverable outcomes: the caller
informs the user and lets them retry.
"""

from __future__ import annotations

from typing import Any


class RoadsideError(Exception):
    """Base class for engine errors."""

    error_code: str = "roadside_error"

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.__class__.__doc__ or self.error_code)
        self.message = message or (self.__class__.__doc__ or self.error_code)
        self.details = details


class ValidationError(RoadsideError):
    """Missing or malformed request fields."""
    error_code = "validation_error"


class NotFoundError(RoadsideError):
    """Referenced request, provider or payment does not exist."""
    error_code = "not_found"


class InvalidTransition(RoadsideError):
    """Requested status change is not allowed from the current status."""
    error_code = "invalid_transition"

    def __init__(self, current: str, target: str, actor: str | None = None) -> None:
        who = f" by {actor}" if actor else ""
        super().__init__(
            f"Invalid transition from {current} to {target}{who}",
            current=current,
            target=target,
            actor=actor,
        )
        self.current = current
        self.target = target
        self.actor = actor


class ConcurrentModificationError(RoadsideError):
    """Optimistic update lost a race; reload and retry."""
    error_code = "concurrent_modification"


class NoProviderAvailable(RoadsideError):
    """No eligible provider could be assigned."""
    error_code = "no_provider_available"


class PaymentVerificationFailed(RoadsideError):
    """Payment gateway reported failure or did not answer in time."""
    error_code = "payment_verification_failed"


class GeocodingFailed(RoadsideError):
    """Address could not be resolved; supply coordinates or retry."""
    error_code = "geocoding_failed"


class DuplicatePaymentError(RoadsideError):
    """Request already has a successful payment under another reference."""
    error_code = "duplicate_payment"
