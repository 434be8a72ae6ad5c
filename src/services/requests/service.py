# src/services/requests/service.py
"""
Service request operations.

Every status change goes through RequestStateMachine and is persisted with a
conditional update. Lost races are retried after reloading the request.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from src.common.constants import Actor, RequestStatus, TypeMsg
from src.common.exceptions import NotFoundError, ValidationError
from src.common.logger import log_info
from src.common.retry import retry_on_conflict
from src.core.geo.service import GeocodingClient, distance_km, service_hub
from src.core.pricing.service import compute_breakdown
from src.infra.event_bus import EventBus
from src.services.requests.repository import RequestRepository
from src.services.requests.state_machine import RequestStateMachine, transition_events
from src.shared.events import RequestCreated
from src.shared.models.pricing import PricingBreakdown
from src.shared.models.request import (
    CreateServiceRequest,
    LocationDTO,
    ServiceRequestDTO,
)


class RequestService:
    def __init__(
        self,
        repository: RequestRepository,
        event_bus: EventBus,
        geocoder: GeocodingClient | None = None,
    ):
        self.repository = repository
        self.event_bus = event_bus
        self.geocoder = geocoder

    # === QUERIES ===

    async def get_request(self, request_id: UUID) -> ServiceRequestDTO:
        request = await self.repository.get(request_id)
        if request is None:
            raise NotFoundError(f"Request {request_id} not found", request_id=str(request_id))
        return request

    async def list_pending(self, limit: int = 100) -> list[ServiceRequestDTO]:
        """Paid requests waiting for a provider, oldest first."""
        return await self.repository.list_pending(limit=limit)

    async def quote(
        self,
        service_type: str,
        *,
        distance: float | None = None,
        location: LocationDTO | None = None,
    ) -> PricingBreakdown:
        """Price for a service, by explicit distance or by location from the hub."""
        if distance is None:
            if location is None:
                raise ValidationError("Either distance_km or coordinates are required")
            distance = distance_km(service_hub(), location)
        return compute_breakdown(service_type, distance)

    # === CREATE ===

    async def create_request(self, payload: CreateServiceRequest) -> ServiceRequestDTO:
        """
        Creates a request in pending_payment.

        Coordinates are geocoded from the address when missing; the price is
        computed from the distance between the service hub and the location.

        Raises:
            GeocodingFailed: address could not be resolved, nothing stored
            ValidationError: pricing rejected the input
        """
        location = await self._resolve_location(payload)

        distance = distance_km(service_hub(), location)
        breakdown = compute_breakdown(payload.service_type, distance)

        draft = ServiceRequestDTO(
            id=uuid4(),
            user_id=payload.user_id,
            service_type=payload.service_type,
            status=RequestStatus.PENDING_PAYMENT,
            location=location,
            vehicle=payload.vehicle,
            amount=breakdown.total,
            distance_km=breakdown.distance_km,
        )

        created = await self.repository.create(draft)

        await log_info(
            f"Request {created.id} created: {created.service_type}, "
            f"{breakdown.distance_km} km, amount {breakdown.total} {breakdown.currency}",
            type_msg=TypeMsg.INFO,
            extra={"request_id": str(created.id), "user_id": created.user_id},
        )

        await self.event_bus.publish(RequestCreated(
            request_id=str(created.id),
            user_id=created.user_id,
            service_type=str(created.service_type),
            lat=created.location.lat,
            lng=created.location.lng,
            address=created.location.address,
            amount=created.amount,
            distance_km=created.distance_km,
            currency=breakdown.currency,
        ))

        return created

    async def _resolve_location(self, payload: CreateServiceRequest) -> LocationDTO:
        loc = payload.location
        if loc.has_coordinates:
            return LocationDTO(address=loc.address, lat=loc.lat, lng=loc.lng)

        if self.geocoder is None:
            raise ValidationError("Coordinates are required when geocoding is unavailable")
        return await self.geocoder.geocode(loc.address)

    # === TRANSITIONS ===

    @retry_on_conflict()
    async def transition(
        self,
        request_id: UUID,
        target: RequestStatus,
        actor: Actor,
        *,
        amount: int | None = None,
        reason: str | None = None,
        provider_id: UUID | None = None,
    ) -> ServiceRequestDTO:
        """
        Applies one status transition with optimistic concurrency.

        Each attempt reloads the request, so a retry after a lost race
        re-validates against the fresh status.

        Args:
            request_id: Request
            target: Status to move to
            actor: Who drives the change
            amount: Price to record if none is stored (payment success)
            reason: Free text carried on the cancellation event
            provider_id: When set, the request must be assigned to this provider

        Raises:
            NotFoundError, InvalidTransition, ValidationError,
            ConcurrentModificationError (after the retries are spent)
        """
        current = await self.get_request(request_id)

        if provider_id is not None and current.provider_id != provider_id:
            raise ValidationError(
                f"Request {request_id} is not assigned to provider {provider_id}",
                request_id=str(request_id),
                provider_id=str(provider_id),
            )

        # validates against the table, stored state untouched on failure
        RequestStateMachine.apply(current, target, actor, amount=amount)

        updated = await self.repository.update_status_if(
            request_id,
            current.status,
            RequestStatus(target),
            amount=amount,
        )

        await log_info(
            f"Request {request_id}: {current.status} -> {updated.status} by {actor}",
            type_msg=TypeMsg.INFO,
            extra={"request_id": str(request_id), "actor": str(actor)},
        )

        for event in transition_events(current, updated, actor, reason):
            await self.event_bus.publish(event)

        return updated

    async def cancel(
        self,
        request_id: UUID,
        actor: Actor = Actor.USER,
        reason: str | None = None,
        provider_id: UUID | None = None,
    ) -> ServiceRequestDTO:
        """A provider may only cancel the request assigned to it."""
        if actor == Actor.PROVIDER and provider_id is None:
            raise ValidationError(
                "provider_id is required when a provider cancels",
                request_id=str(request_id),
            )
        return await self.transition(
            request_id, RequestStatus.CANCELLED, actor, reason=reason, provider_id=provider_id
        )

    async def start(self, request_id: UUID, provider_id: UUID) -> ServiceRequestDTO:
        """Provider arrived and started the job."""
        return await self.transition(
            request_id, RequestStatus.IN_PROGRESS, Actor.PROVIDER, provider_id=provider_id
        )

    async def complete(self, request_id: UUID, provider_id: UUID) -> ServiceRequestDTO:
        return await self.transition(
            request_id, RequestStatus.COMPLETED, Actor.PROVIDER, provider_id=provider_id
        )

    async def mark_paid(self, request_id: UUID, amount: int | None = None) -> ServiceRequestDTO:
        """pending_payment -> pending after a verified payment."""
        return await self.transition(request_id, RequestStatus.PENDING, Actor.SYSTEM, amount=amount)

    async def force_status(
        self,
        request_id: UUID,
        status: RequestStatus,
        reason: str | None = None,
    ) -> ServiceRequestDTO:
        """
        Admin override: any transition of the table, regardless of actor.
        Transitions outside the table are still rejected.
        """
        return await self.transition(
            request_id, status, Actor.ADMIN, reason=reason or "forced by admin"
        )
