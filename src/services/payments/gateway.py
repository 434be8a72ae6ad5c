# src/services/payments/gateway.py
"""
Paystack API adapter.

Amounts cross this boundary in minor units (kobo); everything inside the
engine uses whole currency units.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from src.common.constants import TypeMsg
from src.common.exceptions import PaymentVerificationFailed
from src.common.logger import log_error, log_info
from src.core.pricing.service import round_half_up


MINOR_UNITS = 100


def to_minor(amount: int) -> int:
    return int(amount) * MINOR_UNITS


def from_minor(amount_minor: int | float) -> int:
    return round_half_up(float(amount_minor) / MINOR_UNITS)


@dataclass(frozen=True)
class GatewayInit:
    reference: str
    authorization_url: str
    access_code: str | None = None


@dataclass(frozen=True)
class GatewayVerification:
    """Normalized verify response. `success` is False for any failure."""
    reference: str
    success: bool
    status: str  # gateway transaction status, "error" when unreachable
    amount: int | None = None  # whole units
    currency: str | None = None
    channel: str | None = None
    request_id: str | None = None
    customer_email: str | None = None
    paid_at: datetime | None = None
    message: str | None = None


class PaystackGateway:
    """
    Paystack transaction API.

    - POST /transaction/initialize
    - GET /transaction/verify/{reference}
    - webhook signature check (HMAC-SHA512 of the raw body)
    """

    def __init__(
        self,
        secret_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            secret_key: Paystack secret key (config if None)
            base_url: API base URL
            timeout: Request timeout in seconds
            client: Preconfigured httpx client (tests)
        """
        if secret_key is None or base_url is None or timeout is None:
            from src.config import settings
            secret_key = secret_key if secret_key is not None else settings.paystack.PAYSTACK_SECRET_KEY
            base_url = base_url or settings.paystack.PAYSTACK_BASE_URL
            timeout = timeout if timeout is not None else settings.paystack.PAYSTACK_TIMEOUT

        self._secret_key = secret_key
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
            },
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def initialize(
        self,
        *,
        reference: str,
        amount: int,
        email: str,
        request_id: str,
        callback_url: str | None = None,
    ) -> GatewayInit:
        """
        Opens a payment intent.

        Raises:
            PaymentVerificationFailed: HTTP error, timeout or status=false
        """
        payload: dict[str, Any] = {
            "email": email,
            "amount": to_minor(amount),
            "reference": reference,
            "metadata": {"request_id": request_id},
        }
        if callback_url:
            payload["callback_url"] = callback_url

        try:
            response = await self._client.post("/transaction/initialize", json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            await log_error(f"Paystack initialize timed out for {reference}: {e}")
            raise PaymentVerificationFailed("Payment gateway timed out", reference=reference) from e
        except (httpx.HTTPError, ValueError) as e:
            await log_error(f"Paystack initialize failed for {reference}: {e}")
            raise PaymentVerificationFailed("Failed to initialize payment", reference=reference) from e

        data = body.get("data") or {}
        if not body.get("status") or not data.get("authorization_url"):
            raise PaymentVerificationFailed(
                body.get("message") or "Failed to initialize payment",
                reference=reference,
            )

        await log_info(f"Paystack payment initialized: {reference}", type_msg=TypeMsg.DEBUG)

        return GatewayInit(
            reference=data.get("reference") or reference,
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code"),
        )

    async def verify(self, reference: str) -> GatewayVerification:
        """
        Verifies a transaction. Never raises on gateway failure, the result
        carries success=False and a message instead.
        """
        try:
            response = await self._client.get(f"/transaction/verify/{reference}")
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            await log_error(f"Paystack verify timed out for {reference}: {e}")
            return GatewayVerification(reference=reference, success=False, status="error",
                                       message="Payment gateway timed out")
        except (httpx.HTTPError, ValueError) as e:
            await log_error(f"Paystack verify failed for {reference}: {e}")
            return GatewayVerification(reference=reference, success=False, status="error",
                                       message=f"Failed to verify payment: {e}")

        return self.parse_verification(reference, body)

    @staticmethod
    def parse_verification(reference: str, body: dict[str, Any]) -> GatewayVerification:
        """Normalizes a verify response (or a webhook `data` envelope)."""
        data = body.get("data") or {}
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            # Paystack sends "" when no metadata was attached
            metadata = {}

        status = str(data.get("status") or "unknown")
        amount_minor = data.get("amount")

        paid_at = None
        raw_paid_at = data.get("paid_at") or data.get("paidAt")
        if raw_paid_at:
            try:
                paid_at = datetime.fromisoformat(str(raw_paid_at).replace("Z", "+00:00"))
            except ValueError:
                paid_at = None

        request_id = metadata.get("request_id")
        customer = data.get("customer") or {}

        return GatewayVerification(
            reference=data.get("reference") or reference,
            success=bool(body.get("status")) and status == "success",
            status=status,
            amount=from_minor(amount_minor) if amount_minor is not None else None,
            currency=data.get("currency"),
            channel=data.get("channel"),
            request_id=str(request_id) if request_id else None,
            customer_email=customer.get("email") if isinstance(customer, dict) else None,
            paid_at=paid_at,
            message=data.get("gateway_response") or body.get("message"),
        )

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        """Checks x-paystack-signature against HMAC-SHA512(secret, raw body)."""
        if not signature or not self._secret_key:
            return False
        expected = hmac.new(self._secret_key.encode(), body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)
