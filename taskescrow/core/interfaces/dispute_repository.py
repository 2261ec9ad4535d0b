"""Dispute Repository Interface"""

from abc import ABC, abstractmethod

from ..entities import Dispute, DisputeStatus


class IDisputeRepository(ABC):
    """Abstract interface for Dispute persistence"""

    @abstractmethod
    async def add(self, dispute: Dispute) -> None:
        """Insert a new dispute"""
        pass

    @abstractmethod
    async def get(self, dispute_id: str) -> Dispute | None:
        """Find dispute by ID"""
        pass

    @abstractmethod
    async def get_by_task(self, task_id: str) -> Dispute | None:
        """Find the dispute raised on a task"""
        pass

    @abstractmethod
    async def list_disputes(
        self,
        status: DisputeStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Dispute]:
        """List disputes, oldest first"""
        pass

    @abstractmethod
    async def mark_resolved(self, dispute: Dispute) -> bool:
        """
        Persist the resolution fields of ``dispute`` if it is still open

        Returns:
            False if another resolver got there first
        """
        pass
