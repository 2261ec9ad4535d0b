"""Domain Entities

Core business entities with no infrastructure dependencies.
"""

from .dispute import Dispute, DisputeParty, DisputeStatus, ResolutionOutcome, ResolutionRecord
from .escrow import ESCROW_TRANSITIONS, EscrowStatus, EscrowTransaction, ensure_escrow_transition
from .events import DomainEvent, TaskEvent
from .idempotency import IdempotencyRecord
from .principal import Principal, Role
from .task import (
    TASK_TRANSITIONS,
    TERMINAL_STATUSES,
    Task,
    TaskStatus,
    can_transition,
    ensure_transition,
)
from .wallet import (
    DEBIT_EVENT_TYPES,
    EARNING_EVENT_TYPES,
    WalletBalance,
    WalletEvent,
    WalletEventType,
    fold_events,
)

__all__ = [
    "Task",
    "TaskStatus",
    "TASK_TRANSITIONS",
    "TERMINAL_STATUSES",
    "can_transition",
    "ensure_transition",
    "EscrowTransaction",
    "EscrowStatus",
    "ESCROW_TRANSITIONS",
    "ensure_escrow_transition",
    "WalletBalance",
    "WalletEvent",
    "WalletEventType",
    "DEBIT_EVENT_TYPES",
    "EARNING_EVENT_TYPES",
    "fold_events",
    "Dispute",
    "DisputeParty",
    "DisputeStatus",
    "ResolutionOutcome",
    "ResolutionRecord",
    "TaskEvent",
    "DomainEvent",
    "IdempotencyRecord",
    "Principal",
    "Role",
]
