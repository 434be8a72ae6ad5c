# src/infra/__init__.py
"""
Infrastructure layer: PostgreSQL and RabbitMQ.
"""

from src.infra.database import DatabaseManager, get_db
from src.infra.event_bus import EventBus, get_event_bus

__all__ = [
    "DatabaseManager",
    "get_db",
    "EventBus",
    "get_event_bus",
]
