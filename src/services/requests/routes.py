# src/services/requests/routes.py
"""
Request and pricing endpoints.
"""

from __future__ import annotations

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from src.common.constants import Actor
from src.common.exceptions import RoadsideError
from src.services.api.errors import to_http_error
from src.services.dependencies import get_request_service
from src.services.requests.service import RequestService
from src.shared.models.common import ErrorResponse
from src.shared.models.pricing import PricingBreakdown, QuoteRequest
from src.shared.models.request import CreateServiceRequest, LocationDTO, ServiceRequestDTO


router = APIRouter(prefix="/requests", tags=["Requests"])
pricing_router = APIRouter(prefix="/pricing", tags=["Pricing"])

ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


class CancelRequestBody(BaseModel):
    actor: Literal["user", "provider"] = "user"
    reason: str | None = None
    # required when actor is "provider"
    provider_id: UUID | None = None


class ProviderActionBody(BaseModel):
    provider_id: UUID


@router.post(
    "",
    response_model=ServiceRequestDTO,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Create a service request",
)
async def create_request(
    payload: CreateServiceRequest,
    service: Annotated[RequestService, Depends(get_request_service)],
) -> ServiceRequestDTO:
    """
    Creates a request in `pending_payment`.

    The address is geocoded when no coordinates are given; a failed lookup
    answers 422 and nothing is stored.
    """
    try:
        return await service.create_request(payload)
    except RoadsideError as e:
        raise to_http_error(e)


@router.get("/{request_id}", response_model=ServiceRequestDTO, responses=ERROR_RESPONSES)
async def get_request(
    request_id: UUID,
    service: Annotated[RequestService, Depends(get_request_service)],
) -> ServiceRequestDTO:
    try:
        return await service.get_request(request_id)
    except RoadsideError as e:
        raise to_http_error(e)


@router.post("/{request_id}/cancel", response_model=ServiceRequestDTO, responses=ERROR_RESPONSES)
async def cancel_request(
    request_id: UUID,
    body: CancelRequestBody,
    service: Annotated[RequestService, Depends(get_request_service)],
) -> ServiceRequestDTO:
    try:
        return await service.cancel(
            request_id,
            actor=Actor(body.actor),
            reason=body.reason,
            provider_id=body.provider_id,
        )
    except RoadsideError as e:
        raise to_http_error(e)


@router.post("/{request_id}/start", response_model=ServiceRequestDTO, responses=ERROR_RESPONSES)
async def start_request(
    request_id: UUID,
    body: ProviderActionBody,
    service: Annotated[RequestService, Depends(get_request_service)],
) -> ServiceRequestDTO:
    """Assigned provider arrived and started work."""
    try:
        return await service.start(request_id, body.provider_id)
    except RoadsideError as e:
        raise to_http_error(e)


@router.post("/{request_id}/complete", response_model=ServiceRequestDTO, responses=ERROR_RESPONSES)
async def complete_request(
    request_id: UUID,
    body: ProviderActionBody,
    service: Annotated[RequestService, Depends(get_request_service)],
) -> ServiceRequestDTO:
    try:
        return await service.complete(request_id, body.provider_id)
    except RoadsideError as e:
        raise to_http_error(e)


@pricing_router.post("/quote", response_model=PricingBreakdown, responses={422: {"model": ErrorResponse}})
async def quote(
    body: QuoteRequest,
    service: Annotated[RequestService, Depends(get_request_service)],
) -> PricingBreakdown:
    """Price by explicit distance, or by coordinates measured from the hub."""
    location = None
    if body.lat is not None and body.lng is not None:
        location = LocationDTO(lat=body.lat, lng=body.lng)
    try:
        return await service.quote(body.service_type, distance=body.distance_km, location=location)
    except RoadsideError as e:
        raise to_http_error(e)
