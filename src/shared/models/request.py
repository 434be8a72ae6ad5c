# src/shared/models/request.py
"""
Service request DTOs.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.common.constants import RequestStatus, ServiceType


class LocationDTO(BaseModel):
    """Resolved location: address plus coordinates."""

    model_config = ConfigDict(frozen=True)

    address: str = ""
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class LocationInput(BaseModel):
    """
    Location as supplied by the customer.

    Either coordinates or a free-text address is required. When only the
    address is given it is geocoded at creation.
    """

    address: str = ""
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)

    @model_validator(mode="after")
    def check_location(self) -> "LocationInput":
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be given together")
        if self.lat is None and not self.address.strip():
            raise ValueError("address or coordinates are required")
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class VehicleSnapshot(BaseModel):
    """Vehicle details copied onto the request at creation."""

    model_config = ConfigDict(frozen=True)

    make: str = ""
    model: str = ""
    year: int | None = Field(default=None, ge=1900, le=2100)
    color: str = ""


class ServiceRequestDTO(BaseModel):
    """
    Immutable snapshot of a service request.

    Transitions never mutate a snapshot; they produce a new one via
    model_copy(update=...).
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    user_id: str
    provider_id: UUID | None = None
    service_type: ServiceType
    status: RequestStatus = RequestStatus.PENDING_PAYMENT
    location: LocationDTO
    vehicle: VehicleSnapshot | None = None

    # Whole currency units
    amount: int | None = None
    distance_km: float | None = None

    # Auto-assign bookkeeping
    assign_attempts: int = 0
    escalated: bool = False

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (RequestStatus.COMPLETED, RequestStatus.CANCELLED)


class CreateServiceRequest(BaseModel):
    """Customer request to create a service request."""

    user_id: str = Field(min_length=1)
    service_type: ServiceType
    location: LocationInput
    vehicle: VehicleSnapshot | None = None
