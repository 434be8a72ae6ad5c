# src/services/matching/service.py
"""
Provider matcher.

Picks the nearest active provider offering the requested service within the
service radius and assigns it atomically. A provider lost to a concurrent
assignment moves the matcher to the next candidate.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from src.common.constants import Actor, RequestStatus, TypeMsg
from src.common.exceptions import NoProviderAvailable, NotFoundError
from src.common.logger import log_info
from src.core.geo.service import distance_km
from src.infra.event_bus import EventBus
from src.services.matching.repository import AssignOutcome, ProviderRepository
from src.services.requests.repository import RequestRepository
from src.services.requests.state_machine import RequestStateMachine, transition_events
from src.shared.events import MatchFailed, ProviderAssigned
from src.shared.models.provider import ProviderDTO
from src.shared.models.request import LocationDTO


@dataclass(frozen=True)
class Candidate:
    provider: ProviderDTO
    distance_km: float


@dataclass(frozen=True)
class AssignmentResult:
    """Outcome of one assign call. Not assigning is a normal outcome."""
    request_id: UUID
    assigned: bool
    provider_id: UUID | None = None
    distance_km: float | None = None
    request_status: RequestStatus | None = None
    reason: str | None = None
    error: NoProviderAvailable | None = None


def rank_candidates(
    location: LocationDTO,
    providers: list[ProviderDTO],
    max_radius_km: float,
) -> list[Candidate]:
    """
    Providers within max_radius_km of location, nearest first.
    Ties are broken by provider id; providers without a location are skipped.
    """
    candidates = []
    for provider in providers:
        if provider.location is None:
            continue
        d = distance_km(location, provider.location)
        if d <= max_radius_km:
            candidates.append(Candidate(provider=provider, distance_km=d))

    candidates.sort(key=lambda c: (c.distance_km, str(c.provider.id)))
    return candidates


class ProviderMatcher:
    def __init__(
        self,
        requests: RequestRepository,
        providers: ProviderRepository,
        event_bus: EventBus,
        max_radius_km: float | None = None,
    ):
        self.requests = requests
        self.providers = providers
        self.event_bus = event_bus
        if max_radius_km is None:
            from src.config import settings
            max_radius_km = settings.matching.MAX_SERVICE_RADIUS_KM
        self.max_radius_km = max_radius_km

    async def assign(self, request_id: UUID, actor: Actor = Actor.MATCHER) -> AssignmentResult:
        """
        Assigns the nearest eligible provider to a pending request.

        Raises:
            NotFoundError: unknown request
        """
        request = await self.requests.get(request_id)
        if request is None:
            raise NotFoundError(f"Request {request_id} not found", request_id=str(request_id))

        if request.status != RequestStatus.PENDING or request.provider_id is not None:
            await log_info(
                f"Request {request_id} is {request.status}, nothing to assign",
                type_msg=TypeMsg.DEBUG,
            )
            return AssignmentResult(
                request_id=request_id,
                assigned=False,
                provider_id=request.provider_id,
                request_status=request.status,
                reason=f"request is {request.status}",
            )

        available = await self.providers.list_available(request.service_type)
        candidates = rank_candidates(request.location, available, self.max_radius_km)

        tried = 0
        for candidate in candidates:
            # raises InvalidTransition for an actor that may not accept
            RequestStateMachine.apply(request, RequestStatus.ACCEPTED, actor, provider_id=candidate.provider.id)

            tried += 1
            attempt = await self.providers.assign_provider(request_id, candidate.provider.id)

            if attempt.outcome == AssignOutcome.ASSIGNED and attempt.request is not None:
                await log_info(
                    f"Provider {candidate.provider.id} assigned to request {request_id} "
                    f"({candidate.distance_km:.2f} km)",
                    type_msg=TypeMsg.INFO,
                    extra={"request_id": str(request_id), "provider_id": str(candidate.provider.id)},
                )
                for event in transition_events(request, attempt.request, actor):
                    await self.event_bus.publish(event)
                await self.event_bus.publish(ProviderAssigned(
                    request_id=str(request_id),
                    provider_id=str(candidate.provider.id),
                    distance_km=round(candidate.distance_km, 3),
                ))
                return AssignmentResult(
                    request_id=request_id,
                    assigned=True,
                    provider_id=candidate.provider.id,
                    distance_km=candidate.distance_km,
                    request_status=RequestStatus.ACCEPTED,
                )

            if attempt.outcome == AssignOutcome.REQUEST_CHANGED:
                current = await self.requests.get(request_id)
                status = current.status if current else None
                await log_info(
                    f"Request {request_id} changed during assignment (now {status}), stopping",
                    type_msg=TypeMsg.WARNING,
                )
                return AssignmentResult(
                    request_id=request_id,
                    assigned=False,
                    provider_id=current.provider_id if current else None,
                    request_status=status,
                    reason="request changed during assignment",
                )

            await log_info(
                f"Provider {candidate.provider.id} taken concurrently, trying next",
                type_msg=TypeMsg.DEBUG,
            )

        reason = (
            "all eligible providers were taken"
            if candidates
            else f"no active provider for {request.service_type} within {self.max_radius_km} km"
        )
        error = NoProviderAvailable(reason, request_id=str(request_id), candidates_tried=tried)

        await log_info(
            f"No provider for request {request_id}: {reason}",
            type_msg=TypeMsg.WARNING,
            extra={"request_id": str(request_id)},
        )
        await self.event_bus.publish(MatchFailed(
            request_id=str(request_id),
            reason=reason,
            candidates_tried=tried,
        ))

        return AssignmentResult(
            request_id=request_id,
            assigned=False,
            request_status=RequestStatus.PENDING,
            reason=reason,
            error=error,
        )
