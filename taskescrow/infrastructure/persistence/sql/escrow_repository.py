"""SQL Implementation of IEscrowRepository"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.entities import EscrowStatus, EscrowTransaction
from ....core.fees import FeeBreakdown
from ....core.interfaces import IEscrowRepository
from .models import EscrowModel, as_utc


def _model_to_escrow(row: EscrowModel) -> EscrowTransaction:
    return EscrowTransaction(
        escrow_id=row.escrow_id,
        task_id=row.task_id,
        poster_id=row.poster_id,
        doer_id=row.doer_id,
        gross_amount=row.gross_amount,
        platform_fee=row.platform_fee,
        fee_percent=Decimal(row.fee_percent) if row.fee_percent is not None else None,
        net_payout=row.net_payout,
        status=EscrowStatus(row.status),
        created_at=as_utc(row.created_at),
        released_at=as_utc(row.released_at),
        auto_release_at=as_utc(row.auto_release_at),
    )


class SqlEscrowRepository(IEscrowRepository):
    """SQL-backed escrow storage"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, escrow: EscrowTransaction) -> None:
        self._session.add(
            EscrowModel(
                escrow_id=escrow.escrow_id,
                task_id=escrow.task_id,
                poster_id=escrow.poster_id,
                doer_id=escrow.doer_id,
                gross_amount=escrow.gross_amount,
                platform_fee=escrow.platform_fee,
                fee_percent=str(escrow.fee_percent) if escrow.fee_percent is not None else None,
                net_payout=escrow.net_payout,
                status=escrow.status.value,
                created_at=escrow.created_at,
                auto_release_at=escrow.auto_release_at,
            )
        )
        await self._session.flush()

    async def get(self, escrow_id: str) -> EscrowTransaction | None:
        row = await self._session.scalar(
            select(EscrowModel)
            .where(EscrowModel.escrow_id == escrow_id)
            .execution_options(populate_existing=True)
        )
        return _model_to_escrow(row) if row else None

    async def get_by_task(self, task_id: str) -> EscrowTransaction | None:
        row = await self._session.scalar(
            select(EscrowModel)
            .where(EscrowModel.task_id == task_id)
            .execution_options(populate_existing=True)
        )
        return _model_to_escrow(row) if row else None

    async def transition(
        self,
        escrow_id: str,
        expected: EscrowStatus,
        new: EscrowStatus,
        **fields,
    ) -> bool:
        result = await self._session.execute(
            update(EscrowModel)
            .where(EscrowModel.escrow_id == escrow_id, EscrowModel.status == expected.value)
            .values(status=new.value, **fields)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def lock_fee(self, escrow_id: str, doer_id: str, breakdown: FeeBreakdown) -> bool:
        result = await self._session.execute(
            update(EscrowModel)
            .where(
                EscrowModel.escrow_id == escrow_id,
                EscrowModel.platform_fee.is_(None),
                EscrowModel.gross_amount == breakdown.gross_amount,
            )
            .values(
                doer_id=doer_id,
                platform_fee=breakdown.platform_fee,
                fee_percent=str(breakdown.applied_fee_percent),
                net_payout=breakdown.net_payout,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_auto_release_at(self, escrow_id: str, auto_release_at: datetime) -> None:
        await self._session.execute(
            update(EscrowModel)
            .where(EscrowModel.escrow_id == escrow_id)
            .values(auto_release_at=auto_release_at)
            .execution_options(synchronize_session=False)
        )
