# src/services/matching/repository.py
"""
Provider persistence and the atomic assignment transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from src.common.constants import ProviderStatus, RequestStatus, ServiceType
from src.common.exceptions import ConcurrentModificationError, NotFoundError
from src.infra.database import DatabaseManager
from src.services.requests.repository import row_to_request
from src.shared.models.provider import ProviderDTO
from src.shared.models.request import LocationDTO, ServiceRequestDTO


class AssignOutcome(str, Enum):
    ASSIGNED = "assigned"
    PROVIDER_TAKEN = "provider_taken"  # lost the provider to a concurrent assign
    REQUEST_CHANGED = "request_changed"  # request no longer pending/unassigned


@dataclass(frozen=True)
class AssignAttempt:
    outcome: AssignOutcome
    request: ServiceRequestDTO | None = None


def row_to_provider(row: Any) -> ProviderDTO:
    """Maps a service_providers row to the DTO."""
    data = dict(row)

    location = None
    if data.get("latitude") is not None and data.get("longitude") is not None:
        location = LocationDTO(
            address=data.get("address") or "",
            lat=data["latitude"],
            lng=data["longitude"],
        )

    service_types = set()
    for value in data.get("service_types") or []:
        try:
            service_types.add(ServiceType(value))
        except ValueError:
            # legacy values are ignored for matching
            continue

    rating = data.get("rating")
    return ProviderDTO(
        id=data["id"],
        name=data["name"],
        phone=data.get("phone"),
        email=data.get("email"),
        service_types=frozenset(service_types),
        status=data["status"],
        location=location,
        rating=float(rating) if rating is not None else None,
    )


class ProviderRepository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    async def get(self, provider_id: UUID) -> ProviderDTO | None:
        row = await self.db.fetchrow("SELECT * FROM service_providers WHERE id = $1", provider_id)
        return row_to_provider(row) if row else None

    async def list_available(self, service_type: ServiceType | str) -> list[ProviderDTO]:
        """Active providers offering the service type."""
        rows = await self.db.fetch(
            """
            SELECT * FROM service_providers
            WHERE status = $1 AND $2 = ANY(service_types)
            """,
            str(ProviderStatus.ACTIVE),
            str(service_type),
        )
        return [row_to_provider(row) for row in rows]

    async def assign_provider(self, request_id: UUID, provider_id: UUID) -> AssignAttempt:
        """
        Marks the provider busy and assigns the request in one transaction.

        The provider is claimed only if still active, the request only if
        still pending with no provider. Either condition failing commits
        nothing.
        """
        try:
            async with self.db.transaction() as conn:
                current = await conn.fetchrow(
                    "SELECT status, provider_id FROM service_requests WHERE id = $1 FOR UPDATE",
                    request_id,
                )
                if (
                    current is None
                    or current["status"] != str(RequestStatus.PENDING)
                    or current["provider_id"] is not None
                ):
                    return AssignAttempt(AssignOutcome.REQUEST_CHANGED)

                claimed = await conn.fetchval(
                    """
                    UPDATE service_providers
                    SET status = $2, updated_at = NOW()
                    WHERE id = $1 AND status = $3
                    RETURNING id
                    """,
                    provider_id,
                    str(ProviderStatus.BUSY),
                    str(ProviderStatus.ACTIVE),
                )
                if claimed is None:
                    return AssignAttempt(AssignOutcome.PROVIDER_TAKEN)

                row = await conn.fetchrow(
                    """
                    UPDATE service_requests
                    SET provider_id = $2, status = $3, updated_at = NOW()
                    WHERE id = $1 AND status = $4 AND provider_id IS NULL
                    RETURNING *
                    """,
                    request_id,
                    provider_id,
                    str(RequestStatus.ACCEPTED),
                    str(RequestStatus.PENDING),
                )
                if row is None:
                    # rolls the provider claim back
                    raise ConcurrentModificationError(f"Request {request_id} changed during assignment")

                return AssignAttempt(AssignOutcome.ASSIGNED, row_to_request(row))
        except ConcurrentModificationError:
            return AssignAttempt(AssignOutcome.REQUEST_CHANGED)

    async def set_availability(self, provider_id: UUID, status: ProviderStatus) -> ProviderDTO:
        """
        Provider goes online (active) or offline (inactive).

        Busy is owned by assignment and release; a busy provider cannot
        change availability until its request ends.

        Raises:
            NotFoundError: unknown provider
            ConcurrentModificationError: provider is busy
        """
        row = await self.db.fetchrow(
            """
            UPDATE service_providers
            SET status = $2, updated_at = NOW()
            WHERE id = $1 AND status <> $3
            RETURNING *
            """,
            provider_id,
            str(status),
            str(ProviderStatus.BUSY),
        )
        if row is not None:
            return row_to_provider(row)

        if await self.get(provider_id) is None:
            raise NotFoundError(f"Provider {provider_id} not found", provider_id=str(provider_id))
        raise ConcurrentModificationError(
            f"Provider {provider_id} is busy with a request",
            provider_id=str(provider_id),
        )
