# tests/worker/test_auto_assign.py
"""
Tests for AutoAssignWorker.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.common.constants import RequestStatus
from src.common.exceptions import NotFoundError
from src.infra.event_bus import EventTypes
from src.services.matching.service import ProviderMatcher
from src.shared.events import MatchFailed, RequestStatusChanged
from src.worker.auto_assign import AutoAssignWorker


@pytest.fixture
def worker(mock_db, mock_event_bus, request_repo, provider_repo) -> AutoAssignWorker:
    matcher = ProviderMatcher(request_repo, provider_repo, mock_event_bus, max_radius_km=50.0)
    return AutoAssignWorker(
        event_bus=mock_event_bus,
        db=mock_db,
        matcher=matcher,
        requests=request_repo,
        timeout=60,
        sweep_interval=1,
        max_attempts=2,
        assign_on_payment=True,
    )


def paid_event(request_id) -> RequestStatusChanged:
    return RequestStatusChanged(
        request_id=str(request_id),
        old_status="pending_payment",
        new_status="pending",
        actor="system",
    )


class TestHandleEvent:
    """Tests for assignment on payment."""

    def test_subscriptions(self, worker: AutoAssignWorker) -> None:
        assert worker.subscriptions == [EventTypes.REQUEST_STATUS_CHANGED]

    @pytest.mark.asyncio
    async def test_assigns_on_payment(self, worker, store) -> None:
        request = store.add_request(lat=9.0, lng=7.0)
        provider = store.add_provider(lat=9.01, lng=7.0)

        await worker.handle_event(paid_event(request.id))

        assert store.requests[request.id].status == RequestStatus.ACCEPTED
        assert store.requests[request.id].provider_id == provider.id

    @pytest.mark.asyncio
    async def test_ignores_other_transitions(self, worker, store) -> None:
        request = store.add_request(lat=9.0, lng=7.0)
        store.add_provider(lat=9.01, lng=7.0)

        await worker.handle_event(RequestStatusChanged(
            request_id=str(request.id), old_status="pending", new_status="cancelled", actor="user",
        ))
        await worker.handle_event(MatchFailed(request_id=str(request.id), reason="none"))

        assert store.requests[request.id].status == RequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_disabled_on_payment(self, worker, store) -> None:
        worker.assign_on_payment = False
        request = store.add_request()
        store.add_provider()

        await worker.handle_event(paid_event(request.id))

        assert store.requests[request.id].status == RequestStatus.PENDING


class TestEscalation:
    """Tests for attempt counting and escalation."""

    @pytest.mark.asyncio
    async def test_escalates_after_max_attempts(self, worker, store, mock_event_bus, published) -> None:
        request = store.add_request()

        await worker.try_assign(request.id)
        assert store.requests[request.id].assign_attempts == 1
        assert not store.requests[request.id].escalated

        await worker.try_assign(request.id)
        assert store.requests[request.id].assign_attempts == 2
        assert store.requests[request.id].escalated

        escalated = published(mock_event_bus, "request.escalated")
        assert len(escalated) == 1
        assert escalated[0].attempts == 2

    @pytest.mark.asyncio
    async def test_escalation_published_once(self, worker, store, mock_event_bus, published) -> None:
        request = store.add_request()

        for _ in range(4):
            await worker.try_assign(request.id)

        assert len(published(mock_event_bus, "request.escalated")) == 1

    @pytest.mark.asyncio
    async def test_no_count_when_not_pending(self, worker, store) -> None:
        request = store.add_request(status=RequestStatus.CANCELLED)

        await worker.try_assign(request.id)

        assert store.requests[request.id].assign_attempts == 0


class TestSweep:
    """Tests for the periodic sweep."""

    @pytest.mark.asyncio
    async def test_sweep_picks_old_requests(self, worker, store) -> None:
        old = store.add_request(lat=9.0, lng=7.0, age=timedelta(minutes=5))
        fresh = store.add_request(lat=9.0, lng=7.0)
        store.add_provider(lat=9.01, lng=7.0)

        assigned = await worker.sweep_once()

        assert assigned == 1
        assert store.requests[old.id].status == RequestStatus.ACCEPTED
        assert store.requests[fresh.id].status == RequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_sweep_skips_escalated(self, worker, store) -> None:
        request = store.add_request(age=timedelta(minutes=5))
        store.requests[request.id] = request.model_copy(update={"escalated": True})
        store.add_provider()

        assert await worker.sweep_once() == 0
        assert store.requests[request.id].status == RequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_sweep_continues_after_error(self, worker, store) -> None:
        first = store.add_request(age=timedelta(minutes=6))
        second = store.add_request(age=timedelta(minutes=5))
        store.add_provider()

        original = worker.matcher.assign

        async def assign(request_id, *args, **kwargs):
            if request_id == first.id:
                raise NotFoundError("gone")
            return await original(request_id, *args, **kwargs)

        worker.matcher.assign = assign

        assert await worker.sweep_once() == 1
        assert store.requests[second.id].status == RequestStatus.ACCEPTED


class TestLifecycle:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_start_subscribes_and_stop_cancels(self, worker, mock_event_bus) -> None:
        await worker.start()

        assert worker.is_running
        kwargs = mock_event_bus.subscribe.await_args.kwargs
        assert kwargs["event_type"] == EventTypes.REQUEST_STATUS_CHANGED
        assert kwargs["queue_name"] == "roadside.autoassignworker.request_status_changed"
        assert len(worker._tasks) == 1

        await worker.stop()

        assert not worker.is_running
