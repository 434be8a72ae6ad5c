# src/services/api/app.py
"""
FastAPI application.

Endpoints (prefix /api/v1):
- POST /requests, GET /requests/{id}
- POST /requests/{id}/cancel | start | complete
- POST /requests/{id}/payments, GET /requests/{id}/payments
- POST /payments/verify, POST /payments/webhook
- POST /pricing/quote
- GET /providers/{id}, POST /providers/{id}/availability
- POST /admin/requests/{id}/assign, POST /admin/requests/{id}/status,
  GET /admin/requests/pending
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.common.logger import setup_logging
from src.config import settings
from src.infra.database import close_db, get_db, init_db
from src.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
from src.services.api.admin import router as admin_router
from src.services.dependencies import cleanup_dependencies, init_dependencies
from src.services.matching.routes import router as providers_router
from src.services.payments.routes import router as payments_router
from src.services.requests.routes import pricing_router, router as requests_router
from src.shared.models.common import HealthStatus


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_db()
    await init_event_bus()
    await init_dependencies(get_db(), get_event_bus())

    yield

    await cleanup_dependencies()
    await close_event_bus()
    await close_db()


app = FastAPI(
    title="Roadside Request Engine",
    description="Service request lifecycle: pricing, payment, provider matching.",
    version=settings.system.VERSION,
    lifespan=lifespan,
)

app.include_router(requests_router, prefix="/api/v1")
app.include_router(pricing_router, prefix="/api/v1")
app.include_router(payments_router, prefix="/api/v1")
app.include_router(providers_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    db_ok = await get_db().health_check()
    bus_ok = await get_event_bus().health_check()
    return HealthStatus(
        service="roadside_api",
        status="healthy" if db_ok and bus_ok else "degraded",
        version=settings.system.VERSION,
        dependencies={
            "postgres": "healthy" if db_ok else "unhealthy",
            "rabbitmq": "healthy" if bus_ok else "unhealthy",
        },
    )
