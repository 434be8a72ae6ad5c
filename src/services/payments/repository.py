# src/services/payments/repository.py
"""
Payment records.

`reference` is the idempotency key (UNIQUE). Success is written with a
conditional update so a reference is recorded as success exactly once.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import asyncpg

from src.common.constants import PaymentStatus
from src.common.exceptions import DuplicatePaymentError, NotFoundError
from src.infra.database import DatabaseManager
from src.shared.models.payment import PaymentDTO


def row_to_payment(row: Any) -> PaymentDTO:
    return PaymentDTO.model_validate(dict(row))


class PaymentRepository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    async def create_pending(
        self,
        *,
        request_id: UUID,
        reference: str,
        amount: int,
        payer_email: str | None,
    ) -> PaymentDTO:
        row = await self.db.fetchrow(
            """
            INSERT INTO payments (id, request_id, reference, amount, status, payer_email)
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
            """,
            uuid4(),
            request_id,
            reference,
            amount,
            str(PaymentStatus.PENDING),
            payer_email,
        )
        return row_to_payment(row)

    async def record_from_gateway(
        self,
        *,
        request_id: UUID,
        reference: str,
        amount: int,
        payer_email: str | None,
    ) -> PaymentDTO:
        """
        Stores a pending row for a reference first seen through the gateway
        (webhook arrived before initialize persisted). Existing rows win.
        """
        await self.db.execute(
            """
            INSERT INTO payments (id, request_id, reference, amount, status, payer_email)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (reference) DO NOTHING
            """,
            uuid4(),
            request_id,
            reference,
            amount,
            str(PaymentStatus.PENDING),
            payer_email,
        )
        payment = await self.get_by_reference(reference)
        if payment is None:
            raise NotFoundError(f"Payment {reference} vanished after insert", reference=reference)
        return payment

    async def get_by_reference(self, reference: str) -> PaymentDTO | None:
        row = await self.db.fetchrow("SELECT * FROM payments WHERE reference = $1", reference)
        return row_to_payment(row) if row else None

    async def get_success_for_request(self, request_id: UUID) -> PaymentDTO | None:
        row = await self.db.fetchrow(
            "SELECT * FROM payments WHERE request_id = $1 AND status = $2",
            request_id,
            str(PaymentStatus.SUCCESS),
        )
        return row_to_payment(row) if row else None

    async def list_by_request(self, request_id: UUID) -> list[PaymentDTO]:
        rows = await self.db.fetch(
            "SELECT * FROM payments WHERE request_id = $1 ORDER BY created_at ASC",
            request_id,
        )
        return [row_to_payment(row) for row in rows]

    async def mark_success(
        self,
        reference: str,
        *,
        method: str | None = None,
        paid_at: datetime | None = None,
        amount: int | None = None,
    ) -> PaymentDTO | None:
        """
        Records success once. Returns None if the reference was already a
        success (duplicate or concurrent delivery). `amount` is what the
        gateway charged, the stored amount is kept when None.

        Raises:
            DuplicatePaymentError: another reference of the same request is
                already a success (uq_payments_request_success)
        """
        try:
            row = await self.db.fetchrow(
                """
                UPDATE payments
                SET status = $2,
                    method = COALESCE($3, method),
                    paid_at = COALESCE($4, NOW()),
                    amount = COALESCE($5, amount),
                    updated_at = NOW()
                WHERE reference = $1 AND status <> $2
                RETURNING *
                """,
                reference,
                str(PaymentStatus.SUCCESS),
                method,
                paid_at,
                amount,
            )
        except asyncpg.UniqueViolationError:
            raise DuplicatePaymentError(
                f"Another payment already succeeded for the request of {reference}",
                reference=reference,
            ) from None
        return row_to_payment(row) if row else None

    async def mark_failed(self, reference: str) -> PaymentDTO | None:
        """Marks the payment failed unless it already succeeded."""
        row = await self.db.fetchrow(
            """
            UPDATE payments
            SET status = $2, updated_at = NOW()
            WHERE reference = $1 AND status <> $3
            RETURNING *
            """,
            reference,
            str(PaymentStatus.FAILED),
            str(PaymentStatus.SUCCESS),
        )
        return row_to_payment(row) if row else None
