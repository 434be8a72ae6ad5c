# src/core/pricing/service.py
"""
Request pricing.

total = base fee + service fee + distance fee, where the base fee covers the
first FREE_DISTANCE_KM and every further km costs PER_KM_RATE.
Pure and deterministic: constants come from the fares config, no I/O.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from src.common.constants import ServiceType
from src.common.exceptions import ValidationError
from src.shared.models.pricing import PricingBreakdown

if TYPE_CHECKING:
    from src.config.loader import FareSettings


def round_half_up(value: float) -> int:
    """Rounds .5 away from zero for non-negative values (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def compute_breakdown(
    service_type: ServiceType | str,
    distance_km: float,
    *,
    strict: bool | None = None,
    fares: "FareSettings | None" = None,
) -> PricingBreakdown:
    """
    Computes the cost breakdown for a service at a given distance.

    Args:
        service_type: Service type (towing, battery, tire, fuel, lockout)
        distance_km: Distance from the service hub in km
        strict: Reject unknown service types instead of pricing them at 0
                (fares.STRICT_SERVICE_TYPES if None)
        fares: Fare constants (settings.fares if None)

    Returns:
        PricingBreakdown

    Raises:
        ValidationError: negative or non-finite distance, or unknown type in strict mode
    """
    if fares is None:
        from src.config import settings
        fares = settings.fares
    if strict is None:
        strict = fares.STRICT_SERVICE_TYPES

    if distance_km is None or not math.isfinite(distance_km) or distance_km < 0:
        raise ValidationError(
            f"Distance must be a non-negative number, got {distance_km}",
            distance_km=distance_km,
        )

    key = service_type.value if isinstance(service_type, ServiceType) else str(service_type).lower()
    if key not in fares.SERVICE_FEES and strict:
        raise ValidationError(f"Unknown service type: {service_type}", service_type=key)
    # Unknown types are priced without a service fee
    service_fee = fares.SERVICE_FEES.get(key, 0)

    extra_km = max(0.0, distance_km - fares.FREE_DISTANCE_KM)
    distance_fee = round_half_up(extra_km * fares.PER_KM_RATE)

    base_fee = fares.BASE_FEE

    return PricingBreakdown(
        base_fee=base_fee,
        distance_fee=distance_fee,
        service_fee=service_fee,
        total=base_fee + service_fee + distance_fee,
        distance_km=round(distance_km, 3),
        currency=fares.CURRENCY,
    )
