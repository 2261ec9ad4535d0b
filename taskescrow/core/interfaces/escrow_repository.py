"""Escrow Repository Interface"""

from abc import ABC, abstractmethod
from datetime import datetime

from ..entities import EscrowStatus, EscrowTransaction
from ..fees import FeeBreakdown


class IEscrowRepository(ABC):
    """Abstract interface for EscrowTransaction persistence"""

    @abstractmethod
    async def add(self, escrow: EscrowTransaction) -> None:
        """Insert a new escrow"""
        pass

    @abstractmethod
    async def get(self, escrow_id: str) -> EscrowTransaction | None:
        """Find escrow by ID"""
        pass

    @abstractmethod
    async def get_by_task(self, task_id: str) -> EscrowTransaction | None:
        """Find the escrow funding a task"""
        pass

    @abstractmethod
    async def transition(
        self,
        escrow_id: str,
        expected: EscrowStatus,
        new: EscrowStatus,
        **fields,
    ) -> bool:
        """Conditionally move an escrow from ``expected`` to ``new``"""
        pass

    @abstractmethod
    async def lock_fee(self, escrow_id: str, doer_id: str, breakdown: FeeBreakdown) -> bool:
        """
        Write the fee breakdown once

        Returns:
            False if a breakdown was already locked
        """
        pass

    @abstractmethod
    async def set_auto_release_at(self, escrow_id: str, auto_release_at: datetime) -> None:
        """Record the review window deadline"""
        pass
