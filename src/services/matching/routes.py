# src/services/matching/routes.py
"""
Provider endpoints.
"""

from __future__ import annotations

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.common.constants import ProviderStatus, TypeMsg
from src.common.exceptions import NotFoundError, RoadsideError
from src.common.logger import log_info
from src.services.api.errors import to_http_error
from src.services.dependencies import get_provider_repository
from src.services.matching.repository import ProviderRepository
from src.shared.models.common import ErrorResponse
from src.shared.models.provider import ProviderDTO


router = APIRouter(prefix="/providers", tags=["Providers"])


class AvailabilityBody(BaseModel):
    status: Literal["active", "inactive"]


@router.get("/{provider_id}", response_model=ProviderDTO, responses={404: {"model": ErrorResponse}})
async def get_provider(
    provider_id: UUID,
    repository: Annotated[ProviderRepository, Depends(get_provider_repository)],
) -> ProviderDTO:
    provider = await repository.get(provider_id)
    if provider is None:
        raise to_http_error(NotFoundError(f"Provider {provider_id} not found"))
    return provider


@router.post(
    "/{provider_id}/availability",
    response_model=ProviderDTO,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def set_availability(
    provider_id: UUID,
    body: AvailabilityBody,
    repository: Annotated[ProviderRepository, Depends(get_provider_repository)],
) -> ProviderDTO:
    """Goes online or offline. A busy provider answers 409 until its job ends."""
    try:
        provider = await repository.set_availability(provider_id, ProviderStatus(body.status))
    except RoadsideError as e:
        raise to_http_error(e)

    await log_info(f"Provider {provider_id} is now {provider.status}", type_msg=TypeMsg.INFO)
    return provider
