"""SQL Implementation of IWalletRepository

A first write inserts the balance row with ON CONFLICT DO NOTHING, then
locks it with SELECT ... FOR UPDATE on PostgreSQL. SQLite ignores the
lock clause; there the engine serializes writers instead.
"""

from dataclasses import replace
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.entities import WalletBalance, WalletEvent, WalletEventType
from ....core.interfaces import IWalletRepository
from .models import WalletBalanceModel, WalletEventModel, as_utc


def _model_to_balance(row: WalletBalanceModel) -> WalletBalance:
    return WalletBalance(
        user_id=row.user_id,
        balance=row.balance,
        total_earnings=row.total_earnings,
        tasks_completed=row.tasks_completed,
        updated_at=as_utc(row.updated_at),
    )


def _model_to_event(row: WalletEventModel) -> WalletEvent:
    return WalletEvent(
        event_id=row.event_id,
        user_id=row.user_id,
        event_type=WalletEventType(row.event_type),
        amount=row.amount,
        balance_before=row.balance_before,
        balance_after=row.balance_after,
        task_id=row.task_id,
        escrow_id=row.escrow_id,
        actor_id=row.actor_id,
        metadata=row.event_metadata or {},
        created_at=as_utc(row.created_at),
        sequence=row.id,
    )


class SqlWalletRepository(IWalletRepository):
    """SQL-backed wallet balances and event log"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str) -> WalletBalance | None:
        row = await self._session.scalar(
            select(WalletBalanceModel)
            .where(WalletBalanceModel.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return _model_to_balance(row) if row else None

    async def get_or_create_for_update(self, user_id: str, now: datetime) -> WalletBalance:
        dialect = self._session.get_bind().dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        await self._session.execute(
            insert(WalletBalanceModel)
            .values(
                user_id=user_id,
                balance=0,
                total_earnings=0,
                tasks_completed=0,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        row = await self._session.scalar(
            select(WalletBalanceModel)
            .where(WalletBalanceModel.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return _model_to_balance(row)

    async def update(self, balance: WalletBalance) -> None:
        await self._session.execute(
            update(WalletBalanceModel)
            .where(WalletBalanceModel.user_id == balance.user_id)
            .values(
                balance=balance.balance,
                total_earnings=balance.total_earnings,
                tasks_completed=balance.tasks_completed,
                updated_at=balance.updated_at,
            )
            .execution_options(synchronize_session=False)
        )

    async def append_event(self, event: WalletEvent) -> WalletEvent:
        row = WalletEventModel(
            event_id=event.event_id,
            user_id=event.user_id,
            event_type=event.event_type.value,
            amount=event.amount,
            balance_before=event.balance_before,
            balance_after=event.balance_after,
            task_id=event.task_id,
            escrow_id=event.escrow_id,
            actor_id=event.actor_id,
            event_metadata=event.metadata or None,
            created_at=event.created_at,
        )
        self._session.add(row)
        await self._session.flush()
        return replace(event, sequence=row.id)

    async def list_events(
        self,
        user_id: str,
        limit: int | None = None,
        offset: int = 0,
        newest_first: bool = False,
    ) -> list[WalletEvent]:
        order = WalletEventModel.id.desc() if newest_first else WalletEventModel.id
        stmt = (
            select(WalletEventModel)
            .where(WalletEventModel.user_id == user_id)
            .order_by(order)
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = await self._session.scalars(stmt)
        return [_model_to_event(r) for r in rows]
