"""Escrow Domain Entity

Funds held on behalf of a task until they are released or refunded.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from ..exceptions import InvalidStateError


class EscrowStatus(str, Enum):
    """Escrow status"""

    IN_ESCROW = "in_escrow"
    DISPUTED = "disputed"
    RELEASED = "released"
    REFUNDED = "refunded"


ESCROW_TRANSITIONS: dict[EscrowStatus, frozenset[EscrowStatus]] = {
    EscrowStatus.IN_ESCROW: frozenset(
        {EscrowStatus.DISPUTED, EscrowStatus.RELEASED, EscrowStatus.REFUNDED}
    ),
    EscrowStatus.DISPUTED: frozenset({EscrowStatus.RELEASED, EscrowStatus.REFUNDED}),
    EscrowStatus.RELEASED: frozenset(),
    EscrowStatus.REFUNDED: frozenset(),
}


def ensure_escrow_transition(from_status: EscrowStatus, to_status: EscrowStatus) -> None:
    if to_status not in ESCROW_TRANSITIONS[from_status]:
        raise InvalidStateError(from_status.value, to_status.value)


@dataclass
class EscrowTransaction:
    """
    Escrow Domain Entity

    The fee breakdown is empty while the task is open and is locked once,
    at acceptance, from the accepting doer's track record. After that
    gross_amount == platform_fee + net_payout.
    """

    escrow_id: str
    task_id: str
    poster_id: str
    gross_amount: int

    doer_id: str | None = None
    platform_fee: int | None = None
    fee_percent: Decimal | None = None
    net_payout: int | None = None

    status: EscrowStatus = EscrowStatus.IN_ESCROW

    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    released_at: datetime | None = None
    auto_release_at: datetime | None = None

    def __post_init__(self):
        """Validate invariants"""
        if not self.escrow_id:
            raise ValueError("escrow_id cannot be empty")
        if self.gross_amount <= 0:
            raise ValueError("gross_amount must be positive")
        if self.fee_locked and self.platform_fee + self.net_payout != self.gross_amount:
            raise ValueError("platform_fee + net_payout must equal gross_amount")

    @property
    def fee_locked(self) -> bool:
        return self.platform_fee is not None and self.net_payout is not None

    def is_settled(self) -> bool:
        return self.status in (EscrowStatus.RELEASED, EscrowStatus.REFUNDED)

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "escrow_id": self.escrow_id,
            "task_id": self.task_id,
            "poster_id": self.poster_id,
            "doer_id": self.doer_id,
            "gross_amount": self.gross_amount,
            "platform_fee": self.platform_fee,
            "fee_percent": str(self.fee_percent) if self.fee_percent is not None else None,
            "net_payout": self.net_payout,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "released_at": self.released_at.isoformat() if self.released_at else None,
            "auto_release_at": (
                self.auto_release_at.isoformat() if self.auto_release_at else None
            ),
        }
