# src/services/payments/service.py
"""
Payment reconciliation.

Turns gateway verification results into durable, idempotent payment records
and moves the request out of pending_payment. Safe under duplicate and
out-of-order delivery: the payment reference is the idempotency key.
"""

from __future__ import annotations

import re
import secrets
import time
from uuid import UUID

from src.common.constants import PaymentStatus, RequestStatus, TypeMsg
from src.common.exceptions import (
    DuplicatePaymentError,
    InvalidTransition,
    NotFoundError,
    PaymentVerificationFailed,
    ValidationError,
)
from src.common.logger import log_error, log_info
from src.infra.event_bus import EventBus
from src.services.payments.gateway import GatewayVerification, PaystackGateway
from src.services.payments.repository import PaymentRepository
from src.services.requests.service import RequestService
from src.shared.events import PaymentFailed, PaymentInitialized, PaymentSucceeded
from src.shared.models.payment import PaymentDTO, PaymentInitResult, PaymentResult


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def make_reference(request_id: UUID | str) -> str:
    """REQ_<request_id>_<unix millis>_<random hex>, unique per attempt."""
    return f"REQ_{request_id}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class PaymentReconciler:
    def __init__(
        self,
        payments: PaymentRepository,
        requests: RequestService,
        gateway: PaystackGateway,
        event_bus: EventBus,
        currency: str | None = None,
    ):
        self.payments = payments
        self.requests = requests
        self.gateway = gateway
        self.event_bus = event_bus
        if currency is None:
            from src.config import settings
            currency = settings.fares.CURRENCY
        self.currency = currency

    # === INITIALIZE ===

    async def initialize(
        self,
        request_id: UUID,
        payer_email: str,
        amount: int | None = None,
        callback_url: str | None = None,
    ) -> PaymentInitResult:
        """
        Opens a gateway payment for a request awaiting payment.

        Args:
            request_id: Request to pay for
            payer_email: Customer email for the gateway
            amount: Amount in whole units (the request's price if None)
            callback_url: Where the gateway returns the customer

        Raises:
            NotFoundError: unknown request
            InvalidTransition: request is not awaiting payment
            ValidationError: bad email or amount
            PaymentVerificationFailed: gateway refused or did not answer
        """
        request = await self.requests.get_request(request_id)

        if request.status != RequestStatus.PENDING_PAYMENT:
            raise InvalidTransition(str(request.status), str(RequestStatus.PENDING), actor="system")

        if not payer_email or not EMAIL_RE.match(payer_email):
            raise ValidationError("A valid payer email is required", payer_email=payer_email)

        if amount is None:
            amount = request.amount
        if amount is None or amount <= 0:
            raise ValidationError("Payment amount must be positive", amount=amount)
        if request.amount is not None and amount < request.amount:
            raise ValidationError(
                f"Payment amount {amount} is below the request price {request.amount}",
                amount=amount,
                price=request.amount,
            )

        if callback_url is None:
            from src.config import settings
            callback_url = settings.paystack.PAYSTACK_CALLBACK_URL

        reference = make_reference(request_id)
        await self.payments.create_pending(
            request_id=request_id,
            reference=reference,
            amount=amount,
            payer_email=payer_email,
        )

        try:
            init = await self.gateway.initialize(
                reference=reference,
                amount=amount,
                email=payer_email,
                request_id=str(request_id),
                callback_url=callback_url,
            )
        except PaymentVerificationFailed as e:
            await self.payments.mark_failed(reference)
            await self.event_bus.publish(PaymentFailed(
                reference=reference,
                request_id=str(request_id),
                reason=e.message,
                gateway_status="error",
            ))
            raise

        await log_info(
            f"Payment {reference} initialized for request {request_id}: {amount} {self.currency}",
            type_msg=TypeMsg.INFO,
            extra={"request_id": str(request_id), "reference": reference},
        )
        await self.event_bus.publish(PaymentInitialized(
            reference=reference,
            request_id=str(request_id),
            amount=amount,
            currency=self.currency,
            authorization_url=init.authorization_url,
        ))

        return PaymentInitResult(
            reference=reference,
            authorization_url=init.authorization_url,
            access_code=init.access_code,
            amount=amount,
        )

    # === RECONCILE ===

    async def reconcile(self, reference: str) -> PaymentResult:
        """
        Verifies `reference` with the gateway and records the outcome.

        Reprocessing a reference that is already a success returns the same
        result and changes no payment. Gateway failures leave the request in
        pending_payment so the customer can pay again.
        """
        existing = await self.payments.get_by_reference(reference)

        if existing is not None and existing.status == PaymentStatus.SUCCESS:
            request_status = await self._ensure_request_paid(existing)
            return self._success_result(existing, request_status, already_processed=True)

        verification = await self.gateway.verify(reference)

        if not verification.success:
            return await self._record_failure(reference, existing, verification)

        if existing is None:
            existing = await self._adopt_unknown_reference(reference, verification)
            if existing is None:
                return PaymentResult(
                    reference=reference,
                    status=PaymentStatus.FAILED,
                    reason="Unknown reference without request metadata",
                )

        if verification.amount is not None and verification.amount != existing.amount:
            if verification.amount < existing.amount:
                return await self._record_failure(
                    reference,
                    existing,
                    verification,
                    reason=f"Amount mismatch: expected {existing.amount}, paid {verification.amount}",
                    gateway_status="amount_mismatch",
                )
            await log_info(
                f"Overpayment for {reference}: expected {existing.amount}, gateway {verification.amount}",
                type_msg=TypeMsg.WARNING,
                extra={"reference": reference, "request_id": str(existing.request_id)},
            )

        other = await self.payments.get_success_for_request(existing.request_id)
        if other is not None and other.reference != reference:
            return await self._already_paid(existing, other.reference)

        try:
            marked = await self.payments.mark_success(
                reference,
                method=verification.channel,
                paid_at=verification.paid_at,
                amount=verification.amount,
            )
        except DuplicatePaymentError:
            # another reference of this request won the race
            other = await self.payments.get_success_for_request(existing.request_id)
            return await self._already_paid(existing, other.reference if other else None)

        if marked is None:
            # a concurrent delivery recorded it first
            current = await self.payments.get_by_reference(reference) or existing
            request_status = await self._ensure_request_paid(current)
            return self._success_result(current, request_status, already_processed=True)

        request_status = await self._ensure_request_paid(marked)

        await log_info(
            f"Payment {reference} succeeded for request {marked.request_id}",
            type_msg=TypeMsg.INFO,
            extra={"reference": reference, "request_id": str(marked.request_id)},
        )
        await self.event_bus.publish(PaymentSucceeded(
            reference=reference,
            request_id=str(marked.request_id),
            amount=marked.amount,
            currency=self.currency,
            channel=marked.method,
        ))

        return self._success_result(marked, request_status)

    async def _ensure_request_paid(self, payment: PaymentDTO) -> RequestStatus | None:
        """
        Moves the request pending_payment -> pending. A request already past
        that point is left alone.
        """
        try:
            request = await self.requests.get_request(payment.request_id)
        except NotFoundError:
            await log_error(f"Payment {payment.reference} points to a missing request {payment.request_id}")
            return None

        if request.status != RequestStatus.PENDING_PAYMENT:
            if request.status == RequestStatus.CANCELLED:
                await log_info(
                    f"Request {request.id} was cancelled before payment {payment.reference} settled",
                    type_msg=TypeMsg.WARNING,
                )
            return request.status

        try:
            updated = await self.requests.mark_paid(payment.request_id, amount=payment.amount)
            return updated.status
        except InvalidTransition:
            # moved on concurrently (cancelled or already paid)
            current = await self.requests.get_request(payment.request_id)
            return current.status

    async def _already_paid(self, payment: PaymentDTO, paid_reference: str | None) -> PaymentResult:
        """A second charge for a paid request is left for manual refund."""
        await log_error(
            f"Request {payment.request_id} already paid by {paid_reference}, "
            f"{payment.reference} needs a refund",
            extra={"reference": payment.reference, "request_id": str(payment.request_id)},
        )
        current = await self.payments.get_by_reference(payment.reference) or payment
        return PaymentResult(
            reference=payment.reference,
            request_id=payment.request_id,
            status=current.status,
            amount=current.amount,
            reason=f"Request already paid by {paid_reference or 'another payment'}",
        )

    async def _record_failure(
        self,
        reference: str,
        existing: PaymentDTO | None,
        verification: GatewayVerification,
        reason: str | None = None,
        gateway_status: str | None = None,
    ) -> PaymentResult:
        """Marks the payment failed; the request stays in pending_payment."""
        request_id = existing.request_id if existing else _parse_uuid(verification.request_id)
        reason = reason or verification.message or f"Payment {verification.status}"
        gateway_status = gateway_status or verification.status

        if existing is not None:
            await self.payments.mark_failed(reference)

        await log_info(
            f"Payment {reference} not verified: {gateway_status} ({reason})",
            type_msg=TypeMsg.WARNING,
            extra={"reference": reference},
        )
        await self.event_bus.publish(PaymentFailed(
            reference=reference,
            request_id=str(request_id) if request_id else None,
            reason=reason,
            gateway_status=gateway_status,
        ))

        error = PaymentVerificationFailed(reason, reference=reference, gateway_status=gateway_status)
        return PaymentResult(
            reference=reference,
            request_id=request_id,
            status=PaymentStatus.FAILED,
            amount=existing.amount if existing else verification.amount,
            request_status=RequestStatus.PENDING_PAYMENT if request_id else None,
            reason=error.message,
        )

    async def _adopt_unknown_reference(
        self,
        reference: str,
        verification: GatewayVerification,
    ) -> PaymentDTO | None:
        """Records a payment first seen at the gateway (out-of-order webhook)."""
        request_id = _parse_uuid(verification.request_id)
        if request_id is None:
            await log_error(f"Verified payment {reference} has no usable request_id metadata")
            return None

        try:
            request = await self.requests.get_request(request_id)
        except NotFoundError:
            await log_error(f"Verified payment {reference} references unknown request {request_id}")
            return None

        # the row carries the price, so an underpaid charge fails the amount check
        amount = request.amount if request.amount is not None else verification.amount
        await log_info(
            f"Recording payment {reference} from gateway data for request {request_id}",
            type_msg=TypeMsg.INFO,
        )
        return await self.payments.record_from_gateway(
            request_id=request_id,
            reference=reference,
            amount=amount or 0,
            payer_email=verification.customer_email,
        )

    @staticmethod
    def _success_result(
        payment: PaymentDTO,
        request_status: RequestStatus | None,
        already_processed: bool = False,
    ) -> PaymentResult:
        return PaymentResult(
            reference=payment.reference,
            request_id=payment.request_id,
            status=PaymentStatus.SUCCESS,
            amount=payment.amount,
            request_status=request_status,
            already_processed=already_processed,
        )


def _parse_uuid(value: str | None) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None
