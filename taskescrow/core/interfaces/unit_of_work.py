"""Unit of Work Interface

One unit of work is one database transaction. Everything a mutating
operation writes (task, escrow, wallet, dispute, audit rows) goes through
the repositories exposed here and commits or rolls back together.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

from ..entities import DomainEvent
from .dispute_repository import IDisputeRepository
from .escrow_repository import IEscrowRepository
from .task_event_repository import ITaskEventRepository
from .task_repository import ITaskRepository
from .wallet_repository import IWalletRepository


class IUnitOfWork(ABC):
    """
    Transactional boundary

    Usage:
        async with uow_factory() as uow:
            task = await uow.tasks.get(task_id)
            ...
        # committed here; uow.pending_events can now be published
    """

    tasks: ITaskRepository
    escrows: IEscrowRepository
    wallets: IWalletRepository
    disputes: IDisputeRepository
    task_events: ITaskEventRepository

    def __init__(self) -> None:
        self.pending_events: list[DomainEvent] = []

    def collect(self, event: DomainEvent) -> None:
        """Queue an event for publication after commit"""
        self.pending_events.append(event)

    @abstractmethod
    async def __aenter__(self) -> "IUnitOfWork":
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc, tb) -> bool | None:
        pass


UnitOfWorkFactory = Callable[[], IUnitOfWork]
