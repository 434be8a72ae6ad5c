# src/services/dependencies.py
"""
Dependency wiring shared by the API, the workers and the CLI.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.core.geo.service import GeocodingClient
    from src.infra.database import DatabaseManager
    from src.infra.event_bus import EventBus
    from src.services.matching.repository import ProviderRepository
    from src.services.matching.service import ProviderMatcher
    from src.services.payments.gateway import PaystackGateway
    from src.services.payments.repository import PaymentRepository
    from src.services.payments.service import PaymentReconciler
    from src.services.requests.repository import RequestRepository
    from src.services.requests.service import RequestService


# Infrastructure singletons
_db: "DatabaseManager | None" = None
_event_bus: "EventBus | None" = None

# External clients
_geocoder: "GeocodingClient | None" = None
_gateway: "PaystackGateway | None" = None

# Services
_request_service: "RequestService | None" = None
_matcher: "ProviderMatcher | None" = None
_reconciler: "PaymentReconciler | None" = None


async def init_dependencies(db: "DatabaseManager", event_bus: "EventBus") -> None:
    """Registers connected infrastructure at startup."""
    global _db, _event_bus
    _db = db
    _event_bus = event_bus


async def cleanup_dependencies() -> None:
    """Closes HTTP clients and forgets cached services."""
    global _geocoder, _gateway, _request_service, _matcher, _reconciler
    if _geocoder is not None:
        await _geocoder.close()
    if _gateway is not None:
        await _gateway.close()
    _geocoder = None
    _gateway = None
    _request_service = None
    _matcher = None
    _reconciler = None


def get_db() -> "DatabaseManager":
    if _db is None:
        raise RuntimeError("Database is not initialized, call init_dependencies()")
    return _db


def get_event_bus() -> "EventBus":
    if _event_bus is None:
        raise RuntimeError("EventBus is not initialized, call init_dependencies()")
    return _event_bus


def get_geocoder() -> "GeocodingClient":
    global _geocoder
    if _geocoder is None:
        from src.core.geo.service import GeocodingClient
        _geocoder = GeocodingClient()
    return _geocoder


def get_gateway() -> "PaystackGateway":
    global _gateway
    if _gateway is None:
        from src.services.payments.gateway import PaystackGateway
        _gateway = PaystackGateway()
    return _gateway


def get_request_repository() -> "RequestRepository":
    from src.services.requests.repository import RequestRepository
    return RequestRepository(get_db())


def get_provider_repository() -> "ProviderRepository":
    from src.services.matching.repository import ProviderRepository
    return ProviderRepository(get_db())


def get_payment_repository() -> "PaymentRepository":
    from src.services.payments.repository import PaymentRepository
    return PaymentRepository(get_db())


def get_request_service() -> "RequestService":
    global _request_service
    if _request_service is None:
        from src.services.requests.service import RequestService
        _request_service = RequestService(
            repository=get_request_repository(),
            event_bus=get_event_bus(),
            geocoder=get_geocoder(),
        )
    return _request_service


def get_matcher() -> "ProviderMatcher":
    global _matcher
    if _matcher is None:
        from src.services.matching.service import ProviderMatcher
        _matcher = ProviderMatcher(
            requests=get_request_repository(),
            providers=get_provider_repository(),
            event_bus=get_event_bus(),
        )
    return _matcher


def get_reconciler() -> "PaymentReconciler":
    global _reconciler
    if _reconciler is None:
        from src.services.payments.service import PaymentReconciler
        _reconciler = PaymentReconciler(
            payments=get_payment_repository(),
            requests=get_request_service(),
            gateway=get_gateway(),
            event_bus=get_event_bus(),
        )
    return _reconciler
