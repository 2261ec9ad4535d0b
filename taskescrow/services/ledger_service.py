"""Wallet Ledger Service

The only writer of wallet balances. Every change appends a WalletEvent
and updates the WalletBalance projection in the caller's unit of work,
so a failed operation leaves neither behind.
"""

from dataclasses import dataclass
from uuid import uuid4

import structlog

from ..core.entities import (
    EARNING_EVENT_TYPES,
    DomainEvent,
    WalletBalance,
    WalletEvent,
    WalletEventType,
    fold_events,
)
from ..core.exceptions import InsufficientFundsError, ValidationError
from ..core.interfaces import IEventBus, IUnitOfWork, UnitOfWorkFactory
from .publishing import Clock, publish_all, utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class LedgerEntry:
    """Outcome of one balance change"""

    balance_before: int
    balance_after: int
    event: WalletEvent

    def to_dict(self) -> dict:
        return {
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "event": self.event.to_dict(),
        }


@dataclass(frozen=True)
class ReconciliationReport:
    """Stored balance compared with the replayed event log"""

    user_id: str
    stored_balance: int
    folded_balance: int | None
    event_count: int
    consistent: bool
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "stored_balance": self.stored_balance,
            "folded_balance": self.folded_balance,
            "event_count": self.event_count,
            "consistent": self.consistent,
            "error": self.error,
        }


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("amount must be an integer in minor units")
    if amount <= 0:
        raise ValidationError("amount must be positive")


class LedgerService:
    """
    Wallet Ledger

    Credits and debits run inside a unit of work owned by the caller
    (task transitions, dispute resolutions). Sandbox deposits and
    withdrawals own their unit of work.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        event_bus: IEventBus | None = None,
        clock: Clock = utcnow,
    ):
        """
        Initialize Ledger Service

        Args:
            uow_factory: Creates a unit of work per operation
            event_bus: Receives wallet events after commit (optional)
            clock: Source of the current UTC time
        """
        self._uow_factory = uow_factory
        self._event_bus = event_bus
        self._clock = clock

    # ========== Balance Changes (caller's transaction) ==========

    async def apply_credit(
        self,
        uow: IUnitOfWork,
        user_id: str,
        amount: int,
        event_type: WalletEventType,
        task_id: str | None = None,
        escrow_id: str | None = None,
        actor_id: str | None = None,
        metadata: dict | None = None,
    ) -> LedgerEntry:
        """Add ``amount`` to a wallet, creating the wallet on first use"""
        _validate_amount(amount)
        return await self._apply(
            uow, user_id, amount, event_type, task_id, escrow_id, actor_id, metadata
        )

    async def apply_debit(
        self,
        uow: IUnitOfWork,
        user_id: str,
        amount: int,
        event_type: WalletEventType,
        task_id: str | None = None,
        escrow_id: str | None = None,
        actor_id: str | None = None,
        metadata: dict | None = None,
    ) -> LedgerEntry:
        """
        Subtract ``amount`` from a wallet

        Raises:
            InsufficientFundsError: If the balance would go negative
        """
        _validate_amount(amount)
        return await self._apply(
            uow, user_id, -amount, event_type, task_id, escrow_id, actor_id, metadata
        )

    async def _apply(
        self,
        uow: IUnitOfWork,
        user_id: str,
        signed_amount: int,
        event_type: WalletEventType,
        task_id: str | None,
        escrow_id: str | None,
        actor_id: str | None,
        metadata: dict | None,
    ) -> LedgerEntry:
        now = self._clock()
        wallet = await uow.wallets.get_or_create_for_update(user_id, now)

        balance_before = wallet.balance
        balance_after = balance_before + signed_amount
        if balance_after < 0:
            raise InsufficientFundsError(user_id, balance_before, -signed_amount)

        wallet.balance = balance_after
        wallet.updated_at = now
        if signed_amount > 0 and event_type in EARNING_EVENT_TYPES:
            wallet.total_earnings += signed_amount
            wallet.tasks_completed += 1

        await uow.wallets.update(wallet)

        event = await uow.wallets.append_event(
            WalletEvent(
                event_id=str(uuid4()),
                user_id=user_id,
                event_type=event_type,
                amount=signed_amount,
                balance_before=balance_before,
                balance_after=balance_after,
                task_id=task_id,
                escrow_id=escrow_id,
                actor_id=actor_id,
                metadata=metadata or {},
                created_at=now,
            )
        )

        direction = "credited" if signed_amount > 0 else "debited"
        uow.collect(DomainEvent(event_type=f"wallet.{direction}", payload=event.to_dict()))
        logger.info(
            f"wallet_{direction}",
            user_id=user_id,
            event_type=event_type.value,
            amount=signed_amount,
            balance_after=balance_after,
            task_id=task_id,
        )
        return LedgerEntry(balance_before, balance_after, event)

    # ========== Sandbox Funds (own transaction) ==========

    async def deposit(self, user_id: str, amount: int, actor_id: str | None = None) -> LedgerEntry:
        """Add sandbox funds to a wallet"""
        async with self._uow_factory() as uow:
            entry = await self.apply_credit(
                uow, user_id, amount, WalletEventType.DEPOSIT, actor_id=actor_id or user_id
            )
        await publish_all(self._event_bus, uow.pending_events)
        return entry

    async def withdraw(self, user_id: str, amount: int) -> LedgerEntry:
        """
        Withdraw sandbox funds

        Raises:
            InsufficientFundsError: If the balance is too low
        """
        async with self._uow_factory() as uow:
            entry = await self.apply_debit(
                uow, user_id, amount, WalletEventType.WITHDRAWAL, actor_id=user_id
            )
        await publish_all(self._event_bus, uow.pending_events)
        return entry

    # ========== Queries ==========

    async def get_balance(self, user_id: str) -> WalletBalance:
        """Current balance; an unknown user has an empty wallet"""
        async with self._uow_factory() as uow:
            wallet = await uow.wallets.get(user_id)
        return wallet or WalletBalance(user_id=user_id, updated_at=self._clock())

    async def list_events(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        newest_first: bool = True,
    ) -> list[WalletEvent]:
        async with self._uow_factory() as uow:
            return await uow.wallets.list_events(
                user_id, limit=limit, offset=offset, newest_first=newest_first
            )

    async def reconcile(self, user_id: str) -> ReconciliationReport:
        """Replay the event log and compare it with the stored balance"""
        async with self._uow_factory() as uow:
            wallet = await uow.wallets.get(user_id)
            events = await uow.wallets.list_events(user_id)

        stored = wallet.balance if wallet else 0
        try:
            folded = fold_events(events)
        except ValueError as e:
            logger.error("ledger_chain_broken", user_id=user_id, error=str(e))
            return ReconciliationReport(
                user_id=user_id,
                stored_balance=stored,
                folded_balance=None,
                event_count=len(events),
                consistent=False,
                error=str(e),
            )

        consistent = folded == stored
        if not consistent:
            logger.error("ledger_mismatch", user_id=user_id, stored=stored, folded=folded)
        return ReconciliationReport(
            user_id=user_id,
            stored_balance=stored,
            folded_balance=folded,
            event_count=len(events),
            consistent=consistent,
        )
