# src/shared/models/provider.py
"""
Service provider DTOs.
"""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import ProviderStatus, ServiceType
from src.shared.models.request import LocationDTO


class ProviderDTO(BaseModel):
    """Static provider record used by matching."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    name: str
    phone: str | None = None
    email: str | None = None
    service_types: frozenset[ServiceType] = Field(default_factory=frozenset)
    status: ProviderStatus = ProviderStatus.INACTIVE
    location: LocationDTO | None = None
    rating: float | None = None

    def offers(self, service_type: ServiceType | str) -> bool:
        """True if the provider offers the given service."""
        try:
            return ServiceType(service_type) in self.service_types
        except ValueError:
            return False
