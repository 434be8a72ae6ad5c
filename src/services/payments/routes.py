# src/services/payments/routes.py
"""
Payment endpoints: initialize, verify callback, signed webhook.
"""

from __future__ import annotations

import json
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from src.common.constants import TypeMsg
from src.common.exceptions import RoadsideError
from src.common.logger import log_info
from src.services.api.errors import to_http_error
from src.services.dependencies import get_gateway, get_payment_repository, get_reconciler
from src.services.payments.gateway import PaystackGateway
from src.services.payments.repository import PaymentRepository
from src.services.payments.service import PaymentReconciler
from src.shared.models.common import ErrorResponse
from src.shared.models.payment import (
    InitializePaymentRequest,
    PaymentDTO,
    PaymentInitResult,
    PaymentResult,
    VerifyPaymentRequest,
)


router = APIRouter(tags=["Payments"])


@router.post(
    "/requests/{request_id}/payments",
    response_model=PaymentInitResult,
    responses={402: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Initialize payment",
)
async def initialize_payment(
    request_id: UUID,
    body: InitializePaymentRequest,
    reconciler: Annotated[PaymentReconciler, Depends(get_reconciler)],
) -> PaymentInitResult:
    """Opens a gateway payment; the customer is sent to `authorization_url`."""
    try:
        return await reconciler.initialize(
            request_id,
            payer_email=body.payer_email,
            callback_url=body.callback_url,
        )
    except RoadsideError as e:
        raise to_http_error(e)


@router.get("/requests/{request_id}/payments", response_model=list[PaymentDTO])
async def list_payments(
    request_id: UUID,
    repository: Annotated[PaymentRepository, Depends(get_payment_repository)],
) -> list[PaymentDTO]:
    return await repository.list_by_request(request_id)


@router.post("/payments/verify", response_model=PaymentResult, summary="Verify payment callback")
async def verify_payment(
    body: VerifyPaymentRequest,
    reconciler: Annotated[PaymentReconciler, Depends(get_reconciler)],
) -> PaymentResult:
    """
    Called when the gateway returns the customer. Idempotent: repeating a
    reference returns the recorded result.
    """
    try:
        return await reconciler.reconcile(body.reference)
    except RoadsideError as e:
        raise to_http_error(e)


@router.post("/payments/webhook", summary="Paystack webhook")
async def payment_webhook(
    request: Request,
    reconciler: Annotated[PaymentReconciler, Depends(get_reconciler)],
    gateway: Annotated[PaystackGateway, Depends(get_gateway)],
    x_paystack_signature: Annotated[str | None, Header()] = None,
) -> dict:
    """
    Signed gateway event. The signature is checked against the raw body
    before anything is reconciled.
    """
    raw = await request.body()
    if not gateway.verify_signature(raw, x_paystack_signature):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        event = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Malformed body")

    event_name = event.get("event", "")
    reference = (event.get("data") or {}).get("reference")
    if not event_name.startswith("charge.") or not reference:
        await log_info(f"Ignoring webhook event {event_name}", type_msg=TypeMsg.DEBUG)
        return {"status": "ignored"}

    try:
        result = await reconciler.reconcile(reference)
    except RoadsideError as e:
        raise to_http_error(e)

    return {"status": "processed", "payment_status": str(result.status)}
