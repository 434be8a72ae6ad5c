# src/shared/events/payment_events.py
"""
Payment events.
"""

from __future__ import annotations

from typing import Literal

from src.shared.events.base import DomainEvent


class PaymentInitialized(DomainEvent):
    """A payment intent was opened at the gateway."""

    event_type: Literal["payment.initialized"] = "payment.initialized"

    reference: str
    request_id: str
    amount: int
    currency: str = "NGN"
    authorization_url: str | None = None


class PaymentSucceeded(DomainEvent):
    """Gateway verified the payment and it was recorded."""

    event_type: Literal["payment.succeeded"] = "payment.succeeded"

    reference: str
    request_id: str
    amount: int
    currency: str = "NGN"
    channel: str | None = None


class PaymentFailed(DomainEvent):
    """Gateway reported failure or could not be reached."""

    event_type: Literal["payment.failed"] = "payment.failed"

    reference: str
    request_id: str | None = None
    reason: str
    gateway_status: str | None = None
