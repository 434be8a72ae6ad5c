# src/infra/event_bus.py
"""
RabbitMQ event bus.
Pub/Sub between the API, the workers and the CLI.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable

import aio_pika
from aio_pika import ExchangeType, Message
from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractExchange,
    AbstractIncomingMessage,
    AbstractQueue,
)

from src.common.constants import TypeMsg
from src.common.logger import get_logger, log_error, log_info
from src.shared.events import DomainEvent, parse_event

logger = get_logger("event_bus")


class EventTypes:
    """Routing keys."""
    # Requests
    REQUEST_CREATED = "request.created"
    REQUEST_STATUS_CHANGED = "request.status_changed"
    REQUEST_CANCELLED = "request.cancelled"
    REQUEST_COMPLETED = "request.completed"
    REQUEST_MATCH_FAILED = "request.match_failed"
    REQUEST_ESCALATED = "request.escalated"

    # Providers
    PROVIDER_ASSIGNED = "provider.assigned"

    # Payments
    PAYMENT_INITIALIZED = "payment.initialized"
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """
    RabbitMQ event bus.

    - publishes events to a topic exchange, routing key = event_type
    - subscribes handlers through durable queues
    - decodes incoming messages into typed events
    """

    _instance: EventBus | None = None
    _connection: AbstractConnection | None = None
    _channel: AbstractChannel | None = None
    _exchange: AbstractExchange | None = None
    _handlers: dict[str, list[EventHandler]]

    def __new__(cls) -> EventBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Runs once thanks to the singleton."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._connection = None
        self._channel = None
        self._exchange = None
        self._handlers = {}
        self._exchange_name = "roadside.events"
        self._queues: dict[str, AbstractQueue] = {}

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed

    async def connect(
        self,
        url: str | None = None,
        exchange_name: str | None = None,
        prefetch_count: int = 10,
    ) -> None:
        """
        Connects to RabbitMQ.

        Args:
            url: AMQP URL (config if None)
            exchange_name: Exchange name
            prefetch_count: Unacked messages per consumer
        """
        if self.is_connected:
            return

        if url is None:
            from src.config import settings
            url = settings.rabbitmq.url
            exchange_name = settings.rabbitmq.RABBITMQ_EXCHANGE
            prefetch_count = settings.rabbitmq.RABBITMQ_PREFETCH_COUNT

        if exchange_name:
            self._exchange_name = exchange_name

        await log_info("Connecting to RabbitMQ...", type_msg=TypeMsg.INFO)

        self._connection = await aio_pika.connect_robust(url)
        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=prefetch_count)

        self._exchange = await self._channel.declare_exchange(
            self._exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )

        await log_info("RabbitMQ connection established", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Closes the RabbitMQ connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._exchange = None
            self._queues = {}
            await log_info("RabbitMQ connection closed", type_msg=TypeMsg.INFO)

    async def publish(self, event: DomainEvent) -> None:
        """
        Publishes an event to the exchange.

        Publishing happens after the state change is committed. A lost event
        never corrupts state: the auto-assign sweep picks up pending requests
        on its own.
        """
        if not self.is_connected or self._exchange is None:
            await log_error(
                f"Event {event.event_type} not published: no RabbitMQ connection",
                extra={"event_id": event.event_id},
            )
            return

        try:
            message = Message(
                body=event.to_json().encode(),
                content_type="application/json",
                message_id=event.event_id,
                timestamp=datetime.now(timezone.utc),
            )

            await self._exchange.publish(
                message,
                routing_key=event.event_type,
            )

            await log_info(
                f"Event published: {event.event_type}",
                type_msg=TypeMsg.DEBUG,
                extra={"event_id": event.event_id},
            )
        except Exception as e:
            await log_error(f"Event publish error: {e}", extra={"event_type": event.event_type})

    async def subscribe(
        self,
        event_type: str,
        handler: EventHandler,
        queue_name: str | None = None,
    ) -> None:
        """
        Subscribes a handler to an event type.

        Args:
            event_type: Routing key pattern
            handler: Async handler receiving the decoded event
            queue_name: Queue name (derived from event_type if None)
        """
        if not self.is_connected or self._channel is None or self._exchange is None:
            await log_error(f"Cannot subscribe to {event_type}: no RabbitMQ connection")
            return

        self._handlers.setdefault(event_type, []).append(handler)

        if queue_name is None:
            prefix = self._exchange_name.split(".")[0]
            queue_name = f"{prefix}.{event_type.replace('.', '_')}"

        if queue_name not in self._queues:
            queue = await self._channel.declare_queue(queue_name, durable=True)
            await queue.bind(self._exchange, routing_key=event_type)
            self._queues[queue_name] = queue
            await queue.consume(self._make_consumer(event_type))

        await log_info(f"Subscribed to {event_type}", type_msg=TypeMsg.DEBUG)

    def _make_consumer(self, event_type: str) -> Callable[[AbstractIncomingMessage], Awaitable[None]]:
        """Builds the queue consumer for one routing key."""
        async def consumer(message: AbstractIncomingMessage) -> None:
            async with message.process():
                try:
                    event = parse_event(message.body)
                except Exception as e:
                    # malformed body, ack and drop
                    await log_error(f"Cannot decode message on {event_type}: {e}")
                    return

                await self.dispatch(event_type, event)

        return consumer

    async def dispatch(self, event_type: str, event: DomainEvent) -> None:
        """Runs every handler registered for event_type."""
        for handler in self._handlers.get(event_type, []):
            try:
                await handler(event)
            except Exception as e:
                await log_error(
                    f"Handler {getattr(handler, '__name__', handler)} failed: {e}",
                    extra={"event_type": event.event_type, "event_id": event.event_id},
                    exc_info=True,
                )

    async def health_check(self) -> bool:
        return self.is_connected


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Returns the global EventBus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


async def init_event_bus() -> None:
    """Connects the global EventBus using the configuration."""
    from src.config import settings

    event_bus = get_event_bus()
    await event_bus.connect(
        url=settings.rabbitmq.url,
        exchange_name=settings.rabbitmq.RABBITMQ_EXCHANGE,
        prefetch_count=settings.rabbitmq.RABBITMQ_PREFETCH_COUNT,
    )
    await log_info(
        f"RabbitMQ connected: {settings.rabbitmq.RABBITMQ_HOST}:{settings.rabbitmq.RABBITMQ_PORT}",
        type_msg=TypeMsg.INFO,
    )


async def close_event_bus() -> None:
    """Closes the global EventBus."""
    event_bus = get_event_bus()
    await event_bus.disconnect()
    await log_info("RabbitMQ disconnected", type_msg=TypeMsg.INFO)
