"""SQL Implementation of IDisputeRepository"""

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.entities import Dispute, DisputeParty, DisputeStatus, ResolutionOutcome
from ....core.interfaces import IDisputeRepository
from .models import DisputeModel, as_utc


def _model_to_dispute(row: DisputeModel) -> Dispute:
    return Dispute(
        dispute_id=row.dispute_id,
        task_id=row.task_id,
        escrow_id=row.escrow_id,
        raised_by=row.raised_by,
        raised_by_role=DisputeParty(row.raised_by_role),
        reason=row.reason or "",
        status=DisputeStatus(row.status),
        outcome=ResolutionOutcome(row.outcome) if row.outcome else None,
        split_ratio=Decimal(row.split_ratio) if row.split_ratio is not None else None,
        doer_amount=row.doer_amount,
        poster_amount=row.poster_amount,
        platform_fee=row.platform_fee,
        resolver_id=row.resolver_id,
        resolution_notes=row.resolution_notes,
        created_at=as_utc(row.created_at),
        resolved_at=as_utc(row.resolved_at),
    )


class SqlDisputeRepository(IDisputeRepository):
    """SQL-backed dispute storage"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, dispute: Dispute) -> None:
        self._session.add(
            DisputeModel(
                dispute_id=dispute.dispute_id,
                task_id=dispute.task_id,
                escrow_id=dispute.escrow_id,
                raised_by=dispute.raised_by,
                raised_by_role=dispute.raised_by_role.value,
                reason=dispute.reason,
                status=dispute.status.value,
                created_at=dispute.created_at,
            )
        )
        await self._session.flush()

    async def get(self, dispute_id: str) -> Dispute | None:
        row = await self._session.scalar(
            select(DisputeModel)
            .where(DisputeModel.dispute_id == dispute_id)
            .execution_options(populate_existing=True)
        )
        return _model_to_dispute(row) if row else None

    async def get_by_task(self, task_id: str) -> Dispute | None:
        row = await self._session.scalar(
            select(DisputeModel)
            .where(DisputeModel.task_id == task_id)
            .execution_options(populate_existing=True)
        )
        return _model_to_dispute(row) if row else None

    async def list_disputes(
        self,
        status: DisputeStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Dispute]:
        stmt = select(DisputeModel)
        if status:
            stmt = stmt.where(DisputeModel.status == status.value)
        stmt = stmt.order_by(DisputeModel.created_at).limit(limit).offset(offset)
        rows = await self._session.scalars(stmt)
        return [_model_to_dispute(r) for r in rows]

    async def mark_resolved(self, dispute: Dispute) -> bool:
        result = await self._session.execute(
            update(DisputeModel)
            .where(
                DisputeModel.dispute_id == dispute.dispute_id,
                DisputeModel.status == DisputeStatus.OPEN.value,
            )
            .values(
                status=DisputeStatus.RESOLVED.value,
                outcome=dispute.outcome.value if dispute.outcome else None,
                split_ratio=str(dispute.split_ratio) if dispute.split_ratio is not None else None,
                doer_amount=dispute.doer_amount,
                poster_amount=dispute.poster_amount,
                platform_fee=dispute.platform_fee,
                resolver_id=dispute.resolver_id,
                resolution_notes=dispute.resolution_notes,
                resolved_at=dispute.resolved_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
