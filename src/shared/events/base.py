# src/shared/events/base.py
"""
Base classes for domain events.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, ClassVar, TypeVar
from uuid import uuid4

from pydantic import BaseModel, Field


class EventMetadata(BaseModel):
    """Tracing and de-duplication metadata."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: str | None = None
    causation_id: str | None = None
    source_service: str = ""
    version: int = 1


class DomainEvent(BaseModel):
    """
    Base class for every domain event.

    Events are:
    - immutable once published
    - serializable to JSON
    - idempotent to handle (keyed by event_id)

    Concrete events declare `event_type` as a Literal and are registered by
    that value so consumers can decode the typed event back.
    """

    registry: ClassVar[dict[str, type["DomainEvent"]]] = {}

    event_type: str = ""
    metadata: EventMetadata = Field(default_factory=EventMetadata)

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        field = cls.model_fields.get("event_type")
        event_type = field.default if field is not None else None
        if isinstance(event_type, str) and event_type:
            DomainEvent.registry[event_type] = cls

    def to_json(self) -> str:
        """Serializes the event to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "DomainEvent":
        """Deserializes the event from JSON."""
        return cls.model_validate_json(data)

    @property
    def event_id(self) -> str:
        return self.metadata.event_id

    @property
    def timestamp(self) -> datetime:
        return self.metadata.timestamp


def parse_event(data: str | bytes) -> DomainEvent:
    """
    Decodes a message body into its registered event class.

    Unknown event types decode into the base DomainEvent, extra fields are
    dropped.

    Raises:
        pydantic.ValidationError: body does not match the event schema
    """
    raw = json.loads(data)
    event_cls = DomainEvent.registry.get(raw.get("event_type", ""), DomainEvent)
    return event_cls.model_validate(raw)


EventT = TypeVar("EventT", bound=DomainEvent)
