# src/shared/models/payment.py
"""
Payment DTOs.
Amounts are whole currency units; gateway minor units are converted at the
gateway boundary.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import PaymentStatus, RequestStatus


class PaymentDTO(BaseModel):
    """Durable payment record."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    request_id: UUID
    reference: str
    amount: int
    status: PaymentStatus = PaymentStatus.PENDING
    method: str | None = None  # gateway channel: card, bank, ussd...
    payer_email: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None


class InitializePaymentRequest(BaseModel):
    """Body of POST /requests/{id}/payments."""

    payer_email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    callback_url: str | None = None


class PaymentInitResult(BaseModel):
    """What the client needs to send the customer to the gateway."""

    reference: str
    authorization_url: str
    access_code: str | None = None
    amount: int


class VerifyPaymentRequest(BaseModel):
    """Body of POST /payments/verify."""

    reference: str = Field(min_length=1)


class PaymentResult(BaseModel):
    """Outcome of reconciling one gateway reference."""

    reference: str
    request_id: UUID | None = None
    status: PaymentStatus
    amount: int | None = None
    request_status: RequestStatus | None = None
    # True when the reference had already been recorded as success
    already_processed: bool = False
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCESS
