# src/shared/events/request_events.py
"""
Service request lifecycle events.
"""

from __future__ import annotations

from typing import Literal

from src.shared.events.base import DomainEvent


class RequestCreated(DomainEvent):
    """A request was created and priced."""

    event_type: Literal["request.created"] = "request.created"

    request_id: str
    user_id: str
    service_type: str
    lat: float
    lng: float
    address: str = ""
    amount: int | None = None
    distance_km: float | None = None
    currency: str = "NGN"


class RequestStatusChanged(DomainEvent):
    """Emitted for every committed status transition."""

    event_type: Literal["request.status_changed"] = "request.status_changed"

    request_id: str
    old_status: str
    new_status: str
    actor: str
    provider_id: str | None = None


class RequestCancelled(DomainEvent):
    """Request reached `cancelled`."""

    event_type: Literal["request.cancelled"] = "request.cancelled"

    request_id: str
    previous_status: str
    actor: str
    provider_id: str | None = None
    reason: str | None = None


class RequestCompleted(DomainEvent):
    """Request reached `completed`."""

    event_type: Literal["request.completed"] = "request.completed"

    request_id: str
    provider_id: str | None = None
    amount: int | None = None


class ProviderAssigned(DomainEvent):
    """A provider was atomically assigned to the request."""

    event_type: Literal["provider.assigned"] = "provider.assigned"

    request_id: str
    provider_id: str
    distance_km: float


class MatchFailed(DomainEvent):
    """No eligible provider could be assigned, request stays pending."""

    event_type: Literal["request.match_failed"] = "request.match_failed"

    request_id: str
    reason: str
    candidates_tried: int = 0


class RequestEscalated(DomainEvent):
    """Auto-assign gave up, an admin has to assign manually."""

    event_type: Literal["request.escalated"] = "request.escalated"

    request_id: str
    attempts: int
