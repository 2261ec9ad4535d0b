"""Post-commit event publishing shared by the services"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from ..core.entities import DomainEvent
from ..core.interfaces import IEventBus

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


async def publish_all(event_bus: IEventBus | None, events: Iterable[DomainEvent]) -> None:
    """Publish events collected by a committed unit of work, in order"""
    if event_bus is None:
        return
    for event in list(events):
        await event_bus.publish(event)
