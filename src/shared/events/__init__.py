# src/shared/events/__init__.py
"""
RabbitMQ event schemas.

Events are split by domain:
- request_events: creation, status changes, assignment, escalation
- payment_events: initialization, success, failure

Every event carries an event_id for de-duplication.
"""

from src.shared.events.base import DomainEvent, EventMetadata, parse_event
from src.shared.events.request_events import (
    MatchFailed,
    ProviderAssigned,
    RequestCancelled,
    RequestCompleted,
    RequestCreated,
    RequestEscalated,
    RequestStatusChanged,
)
from src.shared.events.payment_events import (
    PaymentFailed,
    PaymentInitialized,
    PaymentSucceeded,
)

__all__ = [
    # Base
    "DomainEvent",
    "EventMetadata",
    "parse_event",
    # Request events
    "RequestCreated",
    "RequestStatusChanged",
    "RequestCancelled",
    "RequestCompleted",
    "ProviderAssigned",
    "MatchFailed",
    "RequestEscalated",
    # Payment events
    "PaymentInitialized",
    "PaymentSucceeded",
    "PaymentFailed",
]
