# src/shared/models/pricing.py
"""
Pricing DTOs.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PricingBreakdown(BaseModel):
    """Cost breakdown, whole currency units."""

    model_config = ConfigDict(frozen=True)

    base_fee: int
    distance_fee: int
    service_fee: int
    total: int
    distance_km: float
    currency: str = "NGN"


class QuoteRequest(BaseModel):
    """Price quote for a service at a given distance from the hub."""

    service_type: str = Field(min_length=1)
    distance_km: float | None = Field(default=None, ge=0)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
