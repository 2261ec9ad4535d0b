"""Repository and Service Interfaces

Abstract contracts implemented by the infrastructure layer.
"""

from .dispute_repository import IDisputeRepository
from .escrow_repository import IEscrowRepository
from .event_bus import IEventBus
from .idempotency_store import IIdempotencyStore
from .rate_limit_store import IRateLimitStore
from .task_event_repository import ITaskEventRepository
from .task_repository import ITaskRepository
from .unit_of_work import IUnitOfWork, UnitOfWorkFactory
from .wallet_repository import IWalletRepository

__all__ = [
    "ITaskRepository",
    "IEscrowRepository",
    "IWalletRepository",
    "IDisputeRepository",
    "ITaskEventRepository",
    "IUnitOfWork",
    "UnitOfWorkFactory",
    "IIdempotencyStore",
    "IRateLimitStore",
    "IEventBus",
]
