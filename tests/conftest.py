# tests/conftest.py
"""
Shared fixtures for the tests.

The in-memory repositories below keep the conditional-update semantics of
the SQL ones: every check-and-write runs under one lock, and each call
yields to the loop first so concurrent coroutines really interleave.
"""

from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

# Environment must be set before src modules are imported
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_secret")

from src.common.constants import PaymentStatus, ProviderStatus, RequestStatus, ServiceType
from src.common.exceptions import ConcurrentModificationError, DuplicatePaymentError, NotFoundError
from src.services.matching.repository import AssignAttempt, AssignOutcome
from src.shared.models.payment import PaymentDTO
from src.shared.models.provider import ProviderDTO
from src.shared.models.request import LocationDTO, ServiceRequestDTO


# =============================================================================
# CONFIG FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Minimal config.json for loader tests."""
    return {
        "_comment_system": "ignored",
        "PROJECT_NAME": "roadside_test",
        "VERSION": "1.0.0-test",
        "DEBUG": False,
        "LOG_LEVEL": "INFO",
        "ENVIRONMENT": "test",
        "API_PORT": 9090,
        "DB_NAME": "roadside_test",
        "BASE_FEE": 1000,
        "FREE_DISTANCE_KM": 3.0,
        "PER_KM_RATE": 200,
        "SERVICE_FEES": {"towing": 4000},
        "STRICT_SERVICE_TYPES": True,
        "MAX_SERVICE_RADIUS_KM": 25.0,
        "CONFLICT_RETRY_ATTEMPTS": 5,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, indent=2))
    return config_file


# =============================================================================
# INFRASTRUCTURE MOCKS
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """DatabaseManager mock."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """EventBus mock."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=None)
    event_bus.subscribe = AsyncMock(return_value=None)
    event_bus.is_connected = True
    return event_bus


@pytest.fixture
def published():
    """Returns a helper listing the events of one type passed to event_bus.publish."""
    def _published(event_bus: AsyncMock, event_type: str) -> list:
        return [
            call.args[0]
            for call in event_bus.publish.await_args_list
            if call.args[0].event_type == event_type
        ]
    return _published


# =============================================================================
# IN-MEMORY REPOSITORIES
# =============================================================================

class InMemoryStore:
    """Rows shared by the in-memory repositories."""

    def __init__(self) -> None:
        self.requests: dict[UUID, ServiceRequestDTO] = {}
        self.providers: dict[UUID, ProviderDTO] = {}
        self.payments: dict[str, PaymentDTO] = {}
        self.lock = asyncio.Lock()

    def add_request(
        self,
        *,
        status: RequestStatus = RequestStatus.PENDING,
        service_type: ServiceType = ServiceType.TOWING,
        lat: float = 9.0579,
        lng: float = 7.4951,
        amount: int | None = 9500,
        provider_id: UUID | None = None,
        age: timedelta = timedelta(0),
    ) -> ServiceRequestDTO:
        stamp = datetime.now(timezone.utc) - age
        request = ServiceRequestDTO(
            id=uuid4(),
            user_id="user-1",
            provider_id=provider_id,
            service_type=service_type,
            status=status,
            location=LocationDTO(address="Garki, Abuja", lat=lat, lng=lng),
            amount=amount,
            distance_km=10.0,
            created_at=stamp,
            updated_at=stamp,
        )
        self.requests[request.id] = request
        return request

    def add_provider(
        self,
        *,
        name: str = "Ace Towing",
        lat: float | None = 9.06,
        lng: float | None = 7.50,
        service_types: tuple[ServiceType, ...] = (ServiceType.TOWING,),
        status: ProviderStatus = ProviderStatus.ACTIVE,
        provider_id: UUID | None = None,
    ) -> ProviderDTO:
        location = LocationDTO(lat=lat, lng=lng) if lat is not None and lng is not None else None
        provider = ProviderDTO(
            id=provider_id or uuid4(),
            name=name,
            service_types=frozenset(service_types),
            status=status,
            location=location,
        )
        self.providers[provider.id] = provider
        return provider


class InMemoryRequestRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(self, request: ServiceRequestDTO) -> ServiceRequestDTO:
        now = datetime.now(timezone.utc)
        stored = request.model_copy(update={"created_at": now, "updated_at": now})
        self.store.requests[stored.id] = stored
        return stored

    async def get(self, request_id: UUID) -> ServiceRequestDTO | None:
        await asyncio.sleep(0)
        return self.store.requests.get(request_id)

    async def update_status_if(
        self,
        request_id: UUID,
        expected: RequestStatus,
        new_status: RequestStatus,
        *,
        amount: int | None = None,
    ) -> ServiceRequestDTO:
        await asyncio.sleep(0)
        async with self.store.lock:
            current = self.store.requests.get(request_id)
            if current is None or current.status != expected:
                raise ConcurrentModificationError(f"Request {request_id} is no longer {expected}")

            updated = current.model_copy(update={
                "status": new_status,
                "amount": current.amount if current.amount is not None else amount,
                "updated_at": datetime.now(timezone.utc),
            })
            self.store.requests[request_id] = updated

            if new_status in (RequestStatus.COMPLETED, RequestStatus.CANCELLED) and updated.provider_id:
                provider = self.store.providers.get(updated.provider_id)
                if provider is not None and provider.status == ProviderStatus.BUSY:
                    self.store.providers[provider.id] = provider.model_copy(
                        update={"status": ProviderStatus.ACTIVE}
                    )
            return updated

    async def list_pending(
        self,
        *,
        older_than: timedelta | None = None,
        include_escalated: bool = True,
        limit: int = 100,
    ) -> list[ServiceRequestDTO]:
        cutoff = datetime.now(timezone.utc) - older_than if older_than else None
        rows = [
            r for r in self.store.requests.values()
            if r.status == RequestStatus.PENDING
            and (cutoff is None or r.updated_at <= cutoff)
            and (include_escalated or not r.escalated)
        ]
        rows.sort(key=lambda r: r.created_at)
        return rows[:limit]

    async def increment_assign_attempts(self, request_id: UUID) -> int:
        async with self.store.lock:
            current = self.store.requests.get(request_id)
            if current is None or current.status != RequestStatus.PENDING:
                return 0
            updated = current.model_copy(update={
                "assign_attempts": current.assign_attempts + 1,
                "updated_at": datetime.now(timezone.utc),
            })
            self.store.requests[request_id] = updated
            return updated.assign_attempts

    async def mark_escalated(self, request_id: UUID) -> bool:
        async with self.store.lock:
            current = self.store.requests.get(request_id)
            if current is None or current.status != RequestStatus.PENDING or current.escalated:
                return False
            self.store.requests[request_id] = current.model_copy(update={"escalated": True})
            return True


class InMemoryProviderRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get(self, provider_id: UUID) -> ProviderDTO | None:
        return self.store.providers.get(provider_id)

    async def list_available(self, service_type: ServiceType | str) -> list[ProviderDTO]:
        rows = [
            p for p in self.store.providers.values()
            if p.status == ProviderStatus.ACTIVE and p.offers(service_type)
        ]
        await asyncio.sleep(0)
        return rows

    async def assign_provider(self, request_id: UUID, provider_id: UUID) -> AssignAttempt:
        await asyncio.sleep(0)
        async with self.store.lock:
            request = self.store.requests.get(request_id)
            if request is None or request.status != RequestStatus.PENDING or request.provider_id is not None:
                return AssignAttempt(AssignOutcome.REQUEST_CHANGED)

            provider = self.store.providers.get(provider_id)
            if provider is None or provider.status != ProviderStatus.ACTIVE:
                return AssignAttempt(AssignOutcome.PROVIDER_TAKEN)

            self.store.providers[provider_id] = provider.model_copy(update={"status": ProviderStatus.BUSY})
            updated = request.model_copy(update={
                "provider_id": provider_id,
                "status": RequestStatus.ACCEPTED,
                "updated_at": datetime.now(timezone.utc),
            })
            self.store.requests[request_id] = updated
            return AssignAttempt(AssignOutcome.ASSIGNED, updated)

    async def set_availability(self, provider_id: UUID, status: ProviderStatus) -> ProviderDTO:
        async with self.store.lock:
            provider = self.store.providers.get(provider_id)
            if provider is None:
                raise NotFoundError(f"Provider {provider_id} not found")
            if provider.status == ProviderStatus.BUSY:
                raise ConcurrentModificationError(f"Provider {provider_id} is busy with a request")
            updated = provider.model_copy(update={"status": status})
            self.store.providers[provider_id] = updated
            return updated


class InMemoryPaymentRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    def _insert(self, request_id: UUID, reference: str, amount: int, payer_email: str | None) -> PaymentDTO:
        now = datetime.now(timezone.utc)
        payment = PaymentDTO(
            id=uuid4(),
            request_id=request_id,
            reference=reference,
            amount=amount,
            status=PaymentStatus.PENDING,
            payer_email=payer_email,
            created_at=now,
            updated_at=now,
        )
        self.store.payments[reference] = payment
        return payment

    async def create_pending(
        self,
        *,
        request_id: UUID,
        reference: str,
        amount: int,
        payer_email: str | None,
    ) -> PaymentDTO:
        async with self.store.lock:
            if reference in self.store.payments:
                raise ValueError(f"duplicate reference {reference}")
            return self._insert(request_id, reference, amount, payer_email)

    async def record_from_gateway(
        self,
        *,
        request_id: UUID,
        reference: str,
        amount: int,
        payer_email: str | None,
    ) -> PaymentDTO:
        async with self.store.lock:
            if reference not in self.store.payments:
                self._insert(request_id, reference, amount, payer_email)
            return self.store.payments[reference]

    async def get_by_reference(self, reference: str) -> PaymentDTO | None:
        await asyncio.sleep(0)
        return self.store.payments.get(reference)

    async def get_success_for_request(self, request_id: UUID) -> PaymentDTO | None:
        await asyncio.sleep(0)
        for payment in self.store.payments.values():
            if payment.request_id == request_id and payment.status == PaymentStatus.SUCCESS:
                return payment
        return None

    async def list_by_request(self, request_id: UUID) -> list[PaymentDTO]:
        return [p for p in self.store.payments.values() if p.request_id == request_id]

    async def mark_success(
        self,
        reference: str,
        *,
        method: str | None = None,
        paid_at: datetime | None = None,
        amount: int | None = None,
    ) -> PaymentDTO | None:
        await asyncio.sleep(0)
        async with self.store.lock:
            payment = self.store.payments.get(reference)
            if payment is None or payment.status == PaymentStatus.SUCCESS:
                return None
            # one success per request, as uq_payments_request_success
            if any(
                p.request_id == payment.request_id and p.status == PaymentStatus.SUCCESS
                for p in self.store.payments.values()
            ):
                raise DuplicatePaymentError(f"Another payment already succeeded for {reference}")
            updated = payment.model_copy(update={
                "status": PaymentStatus.SUCCESS,
                "method": method or payment.method,
                "amount": amount if amount is not None else payment.amount,
                "paid_at": paid_at or datetime.now(timezone.utc),
            })
            self.store.payments[reference] = updated
            return updated

    async def mark_failed(self, reference: str) -> PaymentDTO | None:
        async with self.store.lock:
            payment = self.store.payments.get(reference)
            if payment is None or payment.status == PaymentStatus.SUCCESS:
                return None
            updated = payment.model_copy(update={"status": PaymentStatus.FAILED})
            self.store.payments[reference] = updated
            return updated


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def request_repo(store: InMemoryStore) -> InMemoryRequestRepository:
    return InMemoryRequestRepository(store)


@pytest.fixture
def provider_repo(store: InMemoryStore) -> InMemoryProviderRepository:
    return InMemoryProviderRepository(store)


@pytest.fixture
def payment_repo(store: InMemoryStore) -> InMemoryPaymentRepository:
    return InMemoryPaymentRepository(store)
