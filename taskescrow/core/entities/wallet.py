"""Wallet Domain Entities

WalletBalance is a projection; WalletEvent is the append-only source
of truth. Folding a user's events in order reproduces the balance.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class WalletEventType(str, Enum):
    """Wallet event type"""

    DEPOSIT = "sandbox_deposit"
    WITHDRAWAL = "sandbox_withdrawal"
    ESCROW_LOCK = "escrow_lock"  # Poster funds a new task
    ESCROW_REFUND = "escrow_refund"  # Cancelled task returns funds
    ESCROW_RELEASE = "escrow_release"  # Poster approved or released
    AUTO_RELEASE = "auto_release"  # Review window lapsed
    PLATFORM_FEE = "platform_fee"  # Fee credited to the platform wallet
    DISPUTE_RESOLUTION = "dispute_resolution"  # Doer share of a resolved dispute
    DISPUTE_REFUND = "dispute_refund"  # Poster share of a resolved dispute


DEBIT_EVENT_TYPES = frozenset({WalletEventType.WITHDRAWAL, WalletEventType.ESCROW_LOCK})

# Payouts that count as a completed task for the receiving doer
EARNING_EVENT_TYPES = frozenset(
    {
        WalletEventType.ESCROW_RELEASE,
        WalletEventType.AUTO_RELEASE,
        WalletEventType.DISPUTE_RESOLUTION,
    }
)


@dataclass
class WalletBalance:
    """Current balance and counters for one user"""

    user_id: str
    balance: int = 0
    total_earnings: int = 0
    tasks_completed: int = 0
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "balance": self.balance,
            "total_earnings": self.total_earnings,
            "tasks_completed": self.tasks_completed,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class WalletEvent:
    """
    One balance change

    ``amount`` is signed: credits are positive, debits negative.
    ``sequence`` is assigned by the store and orders events per user.
    """

    event_id: str
    user_id: str
    event_type: WalletEventType
    amount: int
    balance_before: int
    balance_after: int
    task_id: str | None = None
    escrow_id: str | None = None
    actor_id: str | None = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    sequence: int | None = None

    def __post_init__(self):
        if self.balance_after != self.balance_before + self.amount:
            raise ValueError("balance_after must equal balance_before + amount")
        if self.balance_after < 0:
            raise ValueError("balance cannot go negative")
        is_debit = self.event_type in DEBIT_EVENT_TYPES
        if (is_debit and self.amount >= 0) or (not is_debit and self.amount <= 0):
            raise ValueError(f"amount sign does not match event type {self.event_type.value}")

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "user_id": self.user_id,
            "event_type": self.event_type.value,
            "amount": self.amount,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "task_id": self.task_id,
            "escrow_id": self.escrow_id,
            "actor_id": self.actor_id,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


def fold_events(events: Iterable[WalletEvent]) -> int:
    """
    Replay events into a balance

    Raises:
        ValueError: If the chain is broken (an event's balance_before does
            not match the running balance)
    """
    balance = 0
    for event in events:
        if event.balance_before != balance:
            raise ValueError(
                f"ledger chain broken at {event.event_id}: "
                f"expected balance_before {balance}, got {event.balance_before}"
            )
        balance += event.amount
    return balance
