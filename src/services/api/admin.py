# src/services/api/admin.py
"""
Operator endpoints: manual assignment, forced status, pending queue.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.common.constants import RequestStatus
from src.common.exceptions import RoadsideError
from src.services.api.errors import to_http_error
from src.services.dependencies import get_matcher, get_request_service
from src.services.matching.service import ProviderMatcher
from src.services.requests.service import RequestService
from src.shared.models.common import ErrorResponse
from src.shared.models.request import ServiceRequestDTO


router = APIRouter(prefix="/admin", tags=["Admin"])


class AssignmentResponse(BaseModel):
    request_id: UUID
    assigned: bool
    provider_id: UUID | None = None
    distance_km: float | None = None
    request_status: RequestStatus | None = None
    reason: str | None = None
    error_code: str | None = None


class ForceStatusBody(BaseModel):
    status: RequestStatus
    reason: str | None = None


@router.post(
    "/requests/{request_id}/assign",
    response_model=AssignmentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Assign a provider",
)
async def assign_provider(
    request_id: UUID,
    matcher: Annotated[ProviderMatcher, Depends(get_matcher)],
) -> AssignmentResponse:
    """
    Runs the matcher for one request. No available provider is a normal
    outcome: 200 with `assigned=false`.
    """
    try:
        result = await matcher.assign(request_id)
    except RoadsideError as e:
        raise to_http_error(e)

    return AssignmentResponse(
        request_id=result.request_id,
        assigned=result.assigned,
        provider_id=result.provider_id,
        distance_km=round(result.distance_km, 3) if result.distance_km is not None else None,
        request_status=result.request_status,
        reason=result.reason,
        error_code=result.error.error_code if result.error else None,
    )


@router.post(
    "/requests/{request_id}/status",
    response_model=ServiceRequestDTO,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    summary="Force a status transition",
)
async def force_status(
    request_id: UUID,
    body: ForceStatusBody,
    service: Annotated[RequestService, Depends(get_request_service)],
) -> ServiceRequestDTO:
    """Any transition of the lifecycle table; anything else is 409."""
    try:
        return await service.force_status(request_id, body.status, reason=body.reason)
    except RoadsideError as e:
        raise to_http_error(e)


@router.get("/requests/pending", response_model=list[ServiceRequestDTO])
async def list_pending(
    service: Annotated[RequestService, Depends(get_request_service)],
    limit: int = Query(default=100, ge=1, le=500),
) -> list[ServiceRequestDTO]:
    """Paid requests waiting for a provider, oldest first."""
    return await service.list_pending(limit=limit)
