# src/worker/__init__.py
"""
Background workers fed by RabbitMQ events and timers.
"""

from src.worker.auto_assign import AutoAssignWorker
from src.worker.base import BaseWorker

__all__ = ["AutoAssignWorker", "BaseWorker"]
