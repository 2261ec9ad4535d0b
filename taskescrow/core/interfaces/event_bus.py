"""Event Bus Interface"""

from abc import ABC, abstractmethod

from ..entities import DomainEvent


class IEventBus(ABC):
    """Fan-out of committed domain events to subscribers"""

    @abstractmethod
    async def publish(self, event: DomainEvent) -> None:
        """Publish one event. Must not be called before the transaction commits."""
        pass
