"""Idempotency Store Interface"""

from abc import ABC, abstractmethod

from ..entities import IdempotencyRecord


class IIdempotencyStore(ABC):
    """Write-once storage for idempotency records"""

    @abstractmethod
    async def get(self, key: str, caller_id: str, endpoint: str) -> IdempotencyRecord | None:
        """Find the record for a scoped key"""
        pass

    @abstractmethod
    async def put_if_absent(self, record: IdempotencyRecord) -> IdempotencyRecord | None:
        """
        Store a record unless one exists for the same scoped key

        Returns:
            None if stored, otherwise the record that was already there
        """
        pass
