# tests/services/test_state_machine.py
"""
Tests for the request status state machine.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from src.common.constants import Actor, RequestStatus, ServiceType
from src.common.exceptions import InvalidTransition, ValidationError
from src.services.requests.state_machine import RequestStateMachine, transition_events
from src.shared.models.request import LocationDTO, ServiceRequestDTO


def make_request(status: RequestStatus, **kwargs) -> ServiceRequestDTO:
    return ServiceRequestDTO(
        id=uuid4(),
        user_id="user-1",
        service_type=ServiceType.TOWING,
        status=status,
        location=LocationDTO(lat=9.0, lng=7.4),
        **kwargs,
    )


class TestCanTransition:
    """Tests for the transition table."""

    @pytest.mark.parametrize("current,target,actor", [
        (RequestStatus.PENDING_PAYMENT, RequestStatus.PENDING, Actor.SYSTEM),
        (RequestStatus.PENDING_PAYMENT, RequestStatus.CANCELLED, Actor.USER),
        (RequestStatus.PENDING, RequestStatus.ACCEPTED, Actor.MATCHER),
        (RequestStatus.PENDING, RequestStatus.CANCELLED, Actor.USER),
        (RequestStatus.ACCEPTED, RequestStatus.IN_PROGRESS, Actor.PROVIDER),
        (RequestStatus.ACCEPTED, RequestStatus.CANCELLED, Actor.PROVIDER),
        (RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED, Actor.PROVIDER),
    ])
    def test_allowed(self, current, target, actor) -> None:
        assert RequestStateMachine.can_transition(current, target, actor)

    @pytest.mark.parametrize("current,target", [
        (RequestStatus.PENDING_PAYMENT, RequestStatus.ACCEPTED),
        (RequestStatus.PENDING, RequestStatus.COMPLETED),
        (RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED),
        (RequestStatus.COMPLETED, RequestStatus.PENDING),
        (RequestStatus.CANCELLED, RequestStatus.PENDING),
        (RequestStatus.PENDING, RequestStatus.PENDING_PAYMENT),
    ])
    def test_not_in_table(self, current, target) -> None:
        assert not RequestStateMachine.can_transition(current, target)
        assert not RequestStateMachine.can_transition(current, target, Actor.ADMIN)

    def test_wrong_actor(self) -> None:
        assert not RequestStateMachine.can_transition(
            RequestStatus.PENDING_PAYMENT, RequestStatus.PENDING, Actor.USER
        )
        assert not RequestStateMachine.can_transition(
            RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED, Actor.USER
        )

    def test_admin_drives_any_table_transition(self) -> None:
        assert RequestStateMachine.can_transition(
            RequestStatus.PENDING_PAYMENT, RequestStatus.PENDING, Actor.ADMIN
        )

    def test_terminal_states_have_no_targets(self) -> None:
        for status in RequestStateMachine.TERMINAL:
            assert RequestStateMachine.allowed_targets(status) == []

    def test_unknown_status(self) -> None:
        assert not RequestStateMachine.can_transition("flying", RequestStatus.PENDING)
        assert RequestStateMachine.allowed_targets("flying") == []


class TestApply:
    """Tests for RequestStateMachine.apply."""

    def test_returns_new_snapshot(self) -> None:
        request = make_request(RequestStatus.PENDING_PAYMENT, amount=None)

        paid = RequestStateMachine.apply(request, RequestStatus.PENDING, Actor.SYSTEM, amount=9500)

        assert paid.status == RequestStatus.PENDING
        assert paid.amount == 9500
        assert request.status == RequestStatus.PENDING_PAYMENT
        assert request.amount is None

    def test_amount_written_once(self) -> None:
        request = make_request(RequestStatus.PENDING_PAYMENT, amount=7000)
        paid = RequestStateMachine.apply(request, RequestStatus.PENDING, Actor.SYSTEM, amount=9500)
        assert paid.amount == 7000

    def test_negative_amount(self) -> None:
        request = make_request(RequestStatus.PENDING_PAYMENT)
        with pytest.raises(ValidationError):
            RequestStateMachine.apply(request, RequestStatus.PENDING, Actor.SYSTEM, amount=-1)

    def test_invalid_transition_leaves_snapshot(self) -> None:
        request = make_request(RequestStatus.COMPLETED)

        with pytest.raises(InvalidTransition) as exc:
            RequestStateMachine.apply(request, RequestStatus.CANCELLED, Actor.USER)

        assert exc.value.current == "completed"
        assert exc.value.target == "cancelled"
        assert request.status == RequestStatus.COMPLETED

    def test_accept_sets_provider(self) -> None:
        provider_id = uuid4()
        request = make_request(RequestStatus.PENDING)

        accepted = RequestStateMachine.apply(
            request, RequestStatus.ACCEPTED, Actor.MATCHER, provider_id=provider_id
        )

        assert accepted.status == RequestStatus.ACCEPTED
        assert accepted.provider_id == provider_id

    def test_accept_requires_provider(self) -> None:
        request = make_request(RequestStatus.PENDING)
        with pytest.raises(ValidationError):
            RequestStateMachine.apply(request, RequestStatus.ACCEPTED, Actor.ADMIN)

    def test_provider_only_on_accept(self) -> None:
        request = make_request(RequestStatus.PENDING)
        with pytest.raises(ValidationError):
            RequestStateMachine.apply(request, RequestStatus.CANCELLED, Actor.USER, provider_id=uuid4())

    def test_unknown_target(self) -> None:
        request = make_request(RequestStatus.PENDING)
        with pytest.raises(ValidationError):
            RequestStateMachine.apply(request, "teleported", Actor.ADMIN)


class TestTransitionEvents:
    """Tests for transition_events."""

    def test_status_change_only(self) -> None:
        before = make_request(RequestStatus.PENDING_PAYMENT)
        after = before.model_copy(update={"status": RequestStatus.PENDING})

        events = transition_events(before, after, Actor.SYSTEM)

        assert [e.event_type for e in events] == ["request.status_changed"]
        assert events[0].old_status == "pending_payment"
        assert events[0].new_status == "pending"
        assert events[0].actor == "system"

    def test_cancel_emits_cancelled(self) -> None:
        before = make_request(RequestStatus.PENDING)
        after = before.model_copy(update={"status": RequestStatus.CANCELLED})

        events = transition_events(before, after, Actor.USER, reason="changed my mind")

        assert [e.event_type for e in events] == ["request.status_changed", "request.cancelled"]
        assert events[1].reason == "changed my mind"
        assert events[1].previous_status == "pending"

    def test_complete_emits_completed(self) -> None:
        provider_id = uuid4()
        before = make_request(RequestStatus.IN_PROGRESS, provider_id=provider_id, amount=9500)
        after = before.model_copy(update={"status": RequestStatus.COMPLETED})

        events = transition_events(before, after, Actor.PROVIDER)

        assert events[-1].event_type == "request.completed"
        assert events[-1].provider_id == str(provider_id)
        assert events[-1].amount == 9500
