"""Dispute Domain Entity"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum


class DisputeStatus(str, Enum):
    """Dispute status"""

    OPEN = "open"
    RESOLVED = "resolved"


class ResolutionOutcome(str, Enum):
    """How the escrowed funds are redirected"""

    APPROVE = "approve"  # Full payout to the doer, platform fee applies
    REJECT = "reject"  # Full refund to the poster
    SPLIT = "split"  # Proportional split, no platform fee


class DisputeParty(str, Enum):
    """Which side of the task raised the dispute"""

    POSTER = "poster"
    DOER = "doer"


@dataclass
class Dispute:
    """
    Dispute Domain Entity

    Created when a submitted task is disputed. Once resolved the record
    is terminal and carries the amounts that were paid out.
    """

    dispute_id: str
    task_id: str
    escrow_id: str
    raised_by: str
    raised_by_role: DisputeParty
    reason: str = ""

    status: DisputeStatus = DisputeStatus.OPEN
    outcome: ResolutionOutcome | None = None
    split_ratio: Decimal | None = None
    doer_amount: int | None = None
    poster_amount: int | None = None
    platform_fee: int | None = None
    resolver_id: str | None = None
    resolution_notes: str | None = None

    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    resolved_at: datetime | None = None

    def __post_init__(self):
        """Validate invariants"""
        if not self.dispute_id:
            raise ValueError("dispute_id cannot be empty")
        if self.status == DisputeStatus.RESOLVED and self.outcome is None:
            raise ValueError("a resolved dispute must carry an outcome")

    @property
    def is_resolved(self) -> bool:
        return self.status == DisputeStatus.RESOLVED

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "dispute_id": self.dispute_id,
            "task_id": self.task_id,
            "escrow_id": self.escrow_id,
            "raised_by": self.raised_by,
            "raised_by_role": self.raised_by_role.value,
            "reason": self.reason,
            "status": self.status.value,
            "outcome": self.outcome.value if self.outcome else None,
            "split_ratio": str(self.split_ratio) if self.split_ratio is not None else None,
            "doer_amount": self.doer_amount,
            "poster_amount": self.poster_amount,
            "platform_fee": self.platform_fee,
            "resolver_id": self.resolver_id,
            "resolution_notes": self.resolution_notes,
            "created_at": self.created_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass(frozen=True)
class ResolutionRecord:
    """What a resolution paid out"""

    dispute_id: str
    task_id: str
    outcome: ResolutionOutcome
    doer_amount: int
    poster_amount: int
    platform_fee: int
    resolver_id: str
    resolved_at: datetime

    def to_dict(self) -> dict:
        return {
            "dispute_id": self.dispute_id,
            "task_id": self.task_id,
            "outcome": self.outcome.value,
            "doer_amount": self.doer_amount,
            "poster_amount": self.poster_amount,
            "platform_fee": self.platform_fee,
            "resolver_id": self.resolver_id,
            "resolved_at": self.resolved_at.isoformat(),
        }
