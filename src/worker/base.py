# src/worker/base.py
"""
Base class for workers.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.infra.database import DatabaseManager, get_db
from src.infra.event_bus import EventBus, get_event_bus
from src.shared.events import DomainEvent


class BaseWorker(ABC):
    """
    Base class for every worker.
    Subscribes to events and handles them; background loops go to `_tasks`.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        db: Optional[DatabaseManager] = None,
    ) -> None:
        self.event_bus = event_bus or get_event_bus()
        self.db = db or get_db()
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def subscriptions(self) -> List[str]:
        """Event types to subscribe to."""
        pass

    @abstractmethod
    async def handle_event(self, event: DomainEvent) -> None:
        pass

    async def on_start(self) -> None:
        """Hook for background tasks, runs after subscriptions."""
        return None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return

        self._running = True
        await log_info(f"Worker {self.name} starting...", type_msg=TypeMsg.INFO)

        for event_type in self.subscriptions:
            await self.event_bus.subscribe(
                event_type=event_type,
                handler=self._on_event,
                queue_name=f"roadside.{self.name.lower()}.{event_type.replace('.', '_')}",
            )
            await log_info(
                f"Worker {self.name} subscribed to {event_type}",
                type_msg=TypeMsg.DEBUG,
            )

        await self.on_start()

        await log_info(f"Worker {self.name} started", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False

        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._tasks.clear()
        await log_info(f"Worker {self.name} stopped", type_msg=TypeMsg.INFO)

    async def _on_event(self, event: DomainEvent) -> None:
        if not self._running:
            return

        try:
            await log_info(
                f"Worker {self.name} received {event.event_type}",
                type_msg=TypeMsg.DEBUG,
            )
            await self.handle_event(event)
        except Exception as e:
            await log_error(
                f"Worker {self.name} failed on {event.event_type}: {e}",
                extra={"event_type": event.event_type, "event_id": event.event_id},
                exc_info=True,
            )
