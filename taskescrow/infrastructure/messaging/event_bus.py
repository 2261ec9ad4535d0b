"""Event Bus

Post-commit fan-out of domain events.

- InMemoryEventBus: in-process subscribers (single instance, tests)
- RedisEventBus: PUBLISH to ``<prefix>:<event_type>`` for other processes

A failing subscriber or an unreachable Redis is logged and swallowed:
by the time an event is published its transaction has already committed.
"""

import json
from collections.abc import Awaitable, Callable

import redis.asyncio as redis  # type: ignore[import-untyped]
import structlog
from redis.exceptions import RedisError

from ...core.entities import DomainEvent
from ...core.interfaces import IEventBus

logger = structlog.get_logger()

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class InMemoryEventBus(IEventBus):
    """Dispatches events to handlers registered in this process"""

    def __init__(self) -> None:
        self._handlers: list[tuple[str | None, EventHandler]] = []

    def subscribe(self, handler: EventHandler, event_type: str | None = None) -> None:
        """
        Register a handler

        Args:
            handler: Coroutine function receiving the event
            event_type: Only deliver this type; None receives everything
        """
        self._handlers.append((event_type, handler))

    async def publish(self, event: DomainEvent) -> None:
        for event_type, handler in self._handlers:
            if event_type is not None and event_type != event.event_type:
                continue
            try:
                await handler(event)
            except Exception as e:
                logger.warning(
                    "event_handler_failed",
                    event_type=event.event_type,
                    event_id=event.event_id,
                    error=str(e),
                )


class RedisEventBus(IEventBus):
    """Publishes events on Redis pub/sub channels"""

    def __init__(self, redis_client: redis.Redis, channel_prefix: str = "taskescrow:events"):
        self.redis = redis_client
        self.channel_prefix = channel_prefix

    async def publish(self, event: DomainEvent) -> None:
        channel = f"{self.channel_prefix}:{event.event_type}"
        try:
            await self.redis.publish(channel, json.dumps(event.to_dict(), default=str))
        except RedisError as e:
            logger.warning(
                "event_publish_failed",
                channel=channel,
                event_id=event.event_id,
                error=str(e),
            )
