# tests/services/test_request_service.py
"""
Tests for RequestService.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from src.common.constants import Actor, ProviderStatus, RequestStatus, ServiceType
from src.common.exceptions import (
    GeocodingFailed,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from src.services.requests.service import RequestService
from src.shared.models.request import (
    CreateServiceRequest,
    LocationDTO,
    LocationInput,
    VehicleSnapshot,
)


@pytest.fixture
def geocoder() -> AsyncMock:
    geocoder = AsyncMock()
    geocoder.geocode = AsyncMock(return_value=LocationDTO(address="Wuse 2, Abuja", lat=9.08, lng=7.47))
    return geocoder


@pytest.fixture
def service(request_repo, mock_event_bus, geocoder) -> RequestService:
    return RequestService(request_repo, mock_event_bus, geocoder=geocoder)


class TestCreateRequest:
    """Tests for create_request."""

    @pytest.mark.asyncio
    async def test_create_with_coordinates(self, service, store, geocoder, mock_event_bus, published) -> None:
        """Hub coordinates give distance 0 and the minimum towing price."""
        payload = CreateServiceRequest(
            user_id="user-42",
            service_type=ServiceType.TOWING,
            location=LocationInput(address="Hub", lat=9.0579, lng=7.4951),
            vehicle=VehicleSnapshot(make="Toyota", model="Corolla", year=2012, color="silver"),
        )

        request = await service.create_request(payload)

        assert request.status == RequestStatus.PENDING_PAYMENT
        assert request.amount == 7000
        assert request.distance_km == 0.0
        assert request.vehicle.make == "Toyota"
        assert request.id in store.requests
        geocoder.geocode.assert_not_called()

        created = published(mock_event_bus, "request.created")
        assert len(created) == 1
        assert created[0].request_id == str(request.id)
        assert created[0].amount == 7000

    @pytest.mark.asyncio
    async def test_create_geocodes_address(self, service, geocoder) -> None:
        payload = CreateServiceRequest(
            user_id="user-42",
            service_type=ServiceType.BATTERY,
            location=LocationInput(address="Wuse 2"),
        )

        request = await service.create_request(payload)

        geocoder.geocode.assert_awaited_once_with("Wuse 2")
        assert request.location.lat == pytest.approx(9.08)
        assert request.amount >= 2000 + 3500

    @pytest.mark.asyncio
    async def test_geocoding_failure_stores_nothing(self, service, store, geocoder, mock_event_bus) -> None:
        geocoder.geocode.side_effect = GeocodingFailed("No results found for this address")
        payload = CreateServiceRequest(
            user_id="user-42",
            service_type=ServiceType.FUEL,
            location=LocationInput(address="Atlantis"),
        )

        with pytest.raises(GeocodingFailed):
            await service.create_request(payload)

        assert store.requests == {}
        mock_event_bus.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_address_without_geocoder(self, request_repo, mock_event_bus) -> None:
        service = RequestService(request_repo, mock_event_bus, geocoder=None)
        payload = CreateServiceRequest(
            user_id="user-42",
            service_type=ServiceType.FUEL,
            location=LocationInput(address="Garki"),
        )

        with pytest.raises(ValidationError):
            await service.create_request(payload)

    def test_location_requires_address_or_coordinates(self) -> None:
        with pytest.raises(ValueError):
            LocationInput(address="  ")
        with pytest.raises(ValueError):
            LocationInput(lat=9.0)


class TestQueries:
    """Tests for get_request, list_pending and quote."""

    @pytest.mark.asyncio
    async def test_get_unknown(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.get_request(uuid4())

    @pytest.mark.asyncio
    async def test_list_pending_only_pending(self, service, store) -> None:
        pending = store.add_request(status=RequestStatus.PENDING)
        store.add_request(status=RequestStatus.PENDING_PAYMENT)
        store.add_request(status=RequestStatus.ACCEPTED, provider_id=uuid4())

        result = await service.list_pending()

        assert [r.id for r in result] == [pending.id]

    @pytest.mark.asyncio
    async def test_quote_by_distance(self, service) -> None:
        breakdown = await service.quote("towing", distance=10.0)
        assert breakdown.total == 9500

    @pytest.mark.asyncio
    async def test_quote_needs_distance_or_location(self, service) -> None:
        with pytest.raises(ValidationError):
            await service.quote("towing")


class TestTransitions:
    """Tests for the lifecycle operations."""

    @pytest.mark.asyncio
    async def test_mark_paid(self, service, store, mock_event_bus, published) -> None:
        request = store.add_request(status=RequestStatus.PENDING_PAYMENT)

        updated = await service.mark_paid(request.id, amount=9500)

        assert updated.status == RequestStatus.PENDING
        changes = published(mock_event_bus, "request.status_changed")
        assert changes[0].new_status == "pending"
        assert changes[0].actor == "system"

    @pytest.mark.asyncio
    async def test_user_cancels_pending(self, service, store, mock_event_bus, published) -> None:
        request = store.add_request(status=RequestStatus.PENDING)

        cancelled = await service.cancel(request.id, reason="found help")

        assert cancelled.status == RequestStatus.CANCELLED
        assert published(mock_event_bus, "request.cancelled")[0].reason == "found help"

    @pytest.mark.asyncio
    async def test_cancel_completed_rejected(self, service, store, mock_event_bus) -> None:
        request = store.add_request(status=RequestStatus.COMPLETED)

        with pytest.raises(InvalidTransition):
            await service.cancel(request.id)

        assert store.requests[request.id].status == RequestStatus.COMPLETED
        mock_event_bus.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_provider_lifecycle_releases_provider(self, service, store) -> None:
        provider = store.add_provider(status=ProviderStatus.BUSY)
        request = store.add_request(status=RequestStatus.ACCEPTED, provider_id=provider.id)

        started = await service.start(request.id, provider.id)
        assert started.status == RequestStatus.IN_PROGRESS
        assert store.providers[provider.id].status == ProviderStatus.BUSY

        completed = await service.complete(request.id, provider.id)
        assert completed.status == RequestStatus.COMPLETED
        assert store.providers[provider.id].status == ProviderStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_provider_cancel_releases_provider(self, service, store) -> None:
        provider = store.add_provider(status=ProviderStatus.BUSY)
        request = store.add_request(status=RequestStatus.ACCEPTED, provider_id=provider.id)

        await service.cancel(request.id, actor=Actor.PROVIDER, reason="vehicle broke down", provider_id=provider.id)

        assert store.providers[provider.id].status == ProviderStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_provider_cancel_requires_provider_id(self, service, store) -> None:
        provider = store.add_provider(status=ProviderStatus.BUSY)
        request = store.add_request(status=RequestStatus.ACCEPTED, provider_id=provider.id)

        with pytest.raises(ValidationError):
            await service.cancel(request.id, actor=Actor.PROVIDER)

        assert store.requests[request.id].status == RequestStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_other_provider_cannot_cancel(self, service, store) -> None:
        request = store.add_request(status=RequestStatus.ACCEPTED, provider_id=uuid4())

        with pytest.raises(ValidationError):
            await service.cancel(request.id, actor=Actor.PROVIDER, provider_id=uuid4())

        assert store.requests[request.id].status == RequestStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_other_provider_cannot_start(self, service, store) -> None:
        request = store.add_request(status=RequestStatus.ACCEPTED, provider_id=uuid4())

        with pytest.raises(ValidationError):
            await service.start(request.id, uuid4())

    @pytest.mark.asyncio
    async def test_user_cannot_complete(self, service, store) -> None:
        request = store.add_request(status=RequestStatus.IN_PROGRESS, provider_id=uuid4())

        with pytest.raises(InvalidTransition):
            await service.transition(request.id, RequestStatus.COMPLETED, Actor.USER)

    @pytest.mark.asyncio
    async def test_force_status_within_table(self, service, store) -> None:
        request = store.add_request(status=RequestStatus.PENDING_PAYMENT)

        updated = await service.force_status(request.id, RequestStatus.PENDING, reason="paid offline")

        assert updated.status == RequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_force_status_outside_table(self, service, store) -> None:
        request = store.add_request(status=RequestStatus.CANCELLED)

        with pytest.raises(InvalidTransition):
            await service.force_status(request.id, RequestStatus.PENDING)

    @pytest.mark.asyncio
    async def test_concurrent_cancel_and_pay(self, service, store) -> None:
        """Exactly one of two racing transitions wins; the loser re-validates."""
        request = store.add_request(status=RequestStatus.PENDING_PAYMENT)

        results = await asyncio.gather(
            service.cancel(request.id),
            service.mark_paid(request.id),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        final = store.requests[request.id].status

        assert len(successes) >= 1
        assert all(isinstance(f, InvalidTransition) for f in failures)
        assert final in (RequestStatus.CANCELLED, RequestStatus.PENDING)
