# src/common/constants.py
"""
Shared constants and enumerations.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Log message types."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ServiceType(str, Enum):
    """Roadside services offered on the platform."""
    TOWING = "towing"
    BATTERY = "battery"
    TIRE = "tire"
    FUEL = "fuel"
    LOCKOUT = "lockout"

    def __str__(self) -> str:
        return self.value


class RequestStatus(str, Enum):
    """Service request statuses."""
    PENDING_PAYMENT = "pending_payment"
    PENDING = "pending"  # paid, waiting for a provider
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


class ProviderStatus(str, Enum):
    """Provider availability."""
    ACTIVE = "active"
    BUSY = "busy"
    INACTIVE = "inactive"

    def __str__(self) -> str:
        return self.value


class PaymentStatus(str, Enum):
    """Payment statuses."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class Actor(str, Enum):
    """Who is driving a status change."""
    USER = "user"
    PROVIDER = "provider"
    MATCHER = "matcher"
    SYSTEM = "system"
    ADMIN = "admin"

    def __str__(self) -> str:
        return self.value
