# src/services/requests/state_machine.py
"""
Request status state machine.

pending_payment -> pending -> accepted -> in_progress -> completed
cancelled is reachable from pending_payment, pending and accepted.

The machine is pure: it validates a transition against an immutable
snapshot and returns the next snapshot. Persistence is the caller's job.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from src.common.constants import Actor, RequestStatus
from src.common.exceptions import InvalidTransition, ValidationError
from src.shared.events import (
    DomainEvent,
    RequestCancelled,
    RequestCompleted,
    RequestStatusChanged,
)
from src.shared.models.request import ServiceRequestDTO


class RequestStateMachine:
    # target -> actors allowed to drive it, per current status
    ALLOWED_TRANSITIONS: dict[RequestStatus, dict[RequestStatus, frozenset[Actor]]] = {
        RequestStatus.PENDING_PAYMENT: {
            RequestStatus.PENDING: frozenset({Actor.SYSTEM}),
            RequestStatus.CANCELLED: frozenset({Actor.USER, Actor.SYSTEM}),
        },
        RequestStatus.PENDING: {
            RequestStatus.ACCEPTED: frozenset({Actor.MATCHER}),
            RequestStatus.CANCELLED: frozenset({Actor.USER}),
        },
        RequestStatus.ACCEPTED: {
            RequestStatus.IN_PROGRESS: frozenset({Actor.PROVIDER}),
            RequestStatus.CANCELLED: frozenset({Actor.USER, Actor.PROVIDER}),
        },
        RequestStatus.IN_PROGRESS: {
            RequestStatus.COMPLETED: frozenset({Actor.PROVIDER}),
        },
        RequestStatus.COMPLETED: {},
        RequestStatus.CANCELLED: {},
    }

    TERMINAL: frozenset[RequestStatus] = frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED})

    @classmethod
    def allowed_targets(cls, current: RequestStatus | str) -> list[RequestStatus]:
        try:
            return list(cls.ALLOWED_TRANSITIONS.get(RequestStatus(current), {}))
        except ValueError:
            return []

    @classmethod
    def can_transition(
        cls,
        current: RequestStatus | str,
        target: RequestStatus | str,
        actor: Actor | str | None = None,
    ) -> bool:
        """
        True if `current -> target` is in the table and `actor` may drive it.
        Without an actor only the table is checked. ADMIN may drive any
        transition of the table.
        """
        try:
            curr = RequestStatus(current)
            new = RequestStatus(target)
        except ValueError:
            return False

        actors = cls.ALLOWED_TRANSITIONS.get(curr, {}).get(new)
        if actors is None:
            return False
        if actor is None:
            return True

        try:
            who = Actor(actor)
        except ValueError:
            return False
        return who == Actor.ADMIN or who in actors

    @classmethod
    def apply(
        cls,
        snapshot: ServiceRequestDTO,
        target: RequestStatus | str,
        actor: Actor | str,
        *,
        provider_id: UUID | None = None,
        amount: int | None = None,
    ) -> ServiceRequestDTO:
        """
        Validates the transition and returns the next snapshot.

        Args:
            snapshot: Current request state
            target: Requested status
            actor: Who drives the change
            provider_id: Provider being assigned (only with target=accepted)
            amount: Price to record if the request has none yet

        Raises:
            InvalidTransition: not in the table or actor not permitted
            ValidationError: assignment data is inconsistent
        """
        try:
            new_status = RequestStatus(target)
        except ValueError:
            raise ValidationError(f"Unknown status: {target}", status=str(target)) from None

        if not cls.can_transition(snapshot.status, new_status, actor):
            raise InvalidTransition(str(snapshot.status), str(new_status), actor=str(actor))

        changes: dict[str, Any] = {
            "status": new_status,
            "updated_at": datetime.now(timezone.utc),
        }

        if provider_id is not None:
            if new_status != RequestStatus.ACCEPTED:
                raise ValidationError("A provider is only set when the request is accepted")
            if snapshot.provider_id is not None and snapshot.provider_id != provider_id:
                raise ValidationError(
                    "Request already has a provider",
                    provider_id=str(snapshot.provider_id),
                )
            changes["provider_id"] = provider_id

        if new_status == RequestStatus.ACCEPTED and changes.get("provider_id", snapshot.provider_id) is None:
            raise ValidationError("Accepting a request requires a provider, use assign")

        # amount is written once
        if amount is not None and snapshot.amount is None:
            if amount < 0:
                raise ValidationError("Amount must not be negative", amount=amount)
            changes["amount"] = amount

        return snapshot.model_copy(update=changes)


def transition_events(
    before: ServiceRequestDTO,
    after: ServiceRequestDTO,
    actor: Actor | str,
    reason: str | None = None,
) -> list[DomainEvent]:
    """Events emitted once `before -> after` is committed."""
    provider_id = str(after.provider_id) if after.provider_id else None

    events: list[DomainEvent] = [
        RequestStatusChanged(
            request_id=str(after.id),
            old_status=str(before.status),
            new_status=str(after.status),
            actor=str(actor),
            provider_id=provider_id,
        )
    ]

    if after.status == RequestStatus.CANCELLED:
        events.append(RequestCancelled(
            request_id=str(after.id),
            previous_status=str(before.status),
            actor=str(actor),
            provider_id=provider_id,
            reason=reason,
        ))
    elif after.status == RequestStatus.COMPLETED:
        events.append(RequestCompleted(
            request_id=str(after.id),
            provider_id=provider_id,
            amount=after.amount,
        ))

    return events
