# src/shared/models/__init__.py
"""
Shared DTOs and pydantic models.
"""

from src.shared.models.common import (
    ErrorResponse,
    HealthStatus,
    PaginatedResponse,
    PaginationParams,
)
from src.shared.models.payment import (
    InitializePaymentRequest,
    PaymentDTO,
    PaymentInitResult,
    PaymentResult,
    VerifyPaymentRequest,
)
from src.shared.models.pricing import PricingBreakdown, QuoteRequest
from src.shared.models.provider import ProviderDTO
from src.shared.models.request import (
    CreateServiceRequest,
    LocationDTO,
    LocationInput,
    ServiceRequestDTO,
    VehicleSnapshot,
)

__all__ = [
    # Common
    "ErrorResponse",
    "HealthStatus",
    "PaginatedResponse",
    "PaginationParams",
    # Requests
    "CreateServiceRequest",
    "LocationDTO",
    "LocationInput",
    "ServiceRequestDTO",
    "VehicleSnapshot",
    # Pricing
    "PricingBreakdown",
    "QuoteRequest",
    # Providers
    "ProviderDTO",
    # Payments
    "InitializePaymentRequest",
    "PaymentDTO",
    "PaymentInitResult",
    "PaymentResult",
    "VerifyPaymentRequest",
]
