# src/services/requests/repository.py
"""
Service request persistence.

Every status change is a conditional update keyed on the status the caller
last observed. A lost condition raises ConcurrentModificationError.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from src.common.constants import ProviderStatus, RequestStatus
from src.common.exceptions import ConcurrentModificationError
from src.infra.database import DatabaseManager, affected_rows
from src.shared.models.request import LocationDTO, ServiceRequestDTO, VehicleSnapshot


RELEASING_STATUSES = (RequestStatus.COMPLETED, RequestStatus.CANCELLED)


def row_to_request(row: Any) -> ServiceRequestDTO:
    """Maps a service_requests row to the DTO."""
    data = dict(row)

    vehicle = None
    if any(data.get(f"vehicle_{k}") for k in ("make", "model", "year", "color")):
        vehicle = VehicleSnapshot(
            make=data.get("vehicle_make") or "",
            model=data.get("vehicle_model") or "",
            year=data.get("vehicle_year"),
            color=data.get("vehicle_color") or "",
        )

    return ServiceRequestDTO(
        id=data["id"],
        user_id=data["user_id"],
        provider_id=data.get("provider_id"),
        service_type=data["service_type"],
        status=data["status"],
        location=LocationDTO(
            address=data.get("address") or "",
            lat=data["latitude"],
            lng=data["longitude"],
        ),
        vehicle=vehicle,
        amount=data.get("amount"),
        distance_km=data.get("distance_km"),
        assign_attempts=data.get("assign_attempts") or 0,
        escalated=bool(data.get("escalated")),
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
    )


class RequestRepository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    async def create(self, request: ServiceRequestDTO) -> ServiceRequestDTO:
        """Inserts a new request and returns the stored row."""
        vehicle = request.vehicle or VehicleSnapshot()
        row = await self.db.fetchrow(
            """
            INSERT INTO service_requests (
                id, user_id, service_type, status,
                address, latitude, longitude,
                vehicle_make, vehicle_model, vehicle_year, vehicle_color,
                amount, distance_km
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            RETURNING *
            """,
            request.id,
            request.user_id,
            str(request.service_type),
            str(request.status),
            request.location.address,
            request.location.lat,
            request.location.lng,
            vehicle.make or None,
            vehicle.model or None,
            vehicle.year,
            vehicle.color or None,
            request.amount,
            request.distance_km,
        )
        return row_to_request(row)

    async def get(self, request_id: UUID) -> ServiceRequestDTO | None:
        row = await self.db.fetchrow("SELECT * FROM service_requests WHERE id = $1", request_id)
        return row_to_request(row) if row else None

    async def update_status_if(
        self,
        request_id: UUID,
        expected: RequestStatus,
        new_status: RequestStatus,
        *,
        amount: int | None = None,
    ) -> ServiceRequestDTO:
        """
        Moves the request to new_status only if it is still `expected`.

        The amount is written only if none is stored. When the request
        reaches completed or cancelled its provider is set back to active in
        the same transaction.

        Raises:
            ConcurrentModificationError: stored status differs from `expected`
        """
        async with self.db.transaction() as conn:
            row = await conn.fetchrow(
                """
                UPDATE service_requests
                SET status = $3,
                    amount = COALESCE(amount, $4),
                    updated_at = NOW()
                WHERE id = $1 AND status = $2
                RETURNING *
                """,
                request_id,
                str(expected),
                str(new_status),
                amount,
            )
            if row is None:
                raise ConcurrentModificationError(
                    f"Request {request_id} is no longer {expected}",
                    request_id=str(request_id),
                    expected=str(expected),
                )

            if new_status in RELEASING_STATUSES and row["provider_id"] is not None:
                await conn.execute(
                    """
                    UPDATE service_providers
                    SET status = $2, updated_at = NOW()
                    WHERE id = $1 AND status = $3
                    """,
                    row["provider_id"],
                    str(ProviderStatus.ACTIVE),
                    str(ProviderStatus.BUSY),
                )

        return row_to_request(row)

    async def list_pending(
        self,
        *,
        older_than: timedelta | None = None,
        include_escalated: bool = True,
        limit: int = 100,
    ) -> list[ServiceRequestDTO]:
        """Paid requests still waiting for a provider, oldest first."""
        cutoff = datetime.now(timezone.utc) - older_than if older_than else None
        rows = await self.db.fetch(
            """
            SELECT * FROM service_requests
            WHERE status = $1
              AND ($2::timestamptz IS NULL OR updated_at <= $2)
              AND ($3 OR NOT escalated)
            ORDER BY created_at ASC
            LIMIT $4
            """,
            str(RequestStatus.PENDING),
            cutoff,
            include_escalated,
            limit,
        )
        return [row_to_request(row) for row in rows]

    async def increment_assign_attempts(self, request_id: UUID) -> int:
        """Counts one auto-assign attempt, returns the new total."""
        value = await self.db.fetchval(
            """
            UPDATE service_requests
            SET assign_attempts = assign_attempts + 1, updated_at = NOW()
            WHERE id = $1 AND status = $2
            RETURNING assign_attempts
            """,
            request_id,
            str(RequestStatus.PENDING),
        )
        return value or 0

    async def mark_escalated(self, request_id: UUID) -> bool:
        """Flags a pending request for manual assignment. True if newly flagged."""
        status = await self.db.execute(
            """
            UPDATE service_requests
            SET escalated = TRUE, updated_at = NOW()
            WHERE id = $1 AND status = $2 AND NOT escalated
            """,
            request_id,
            str(RequestStatus.PENDING),
        )
        return affected_rows(status) == 1
