"""Dispute Service

Admin resolution of disputed escrows. Every outcome completes the task;
only the destination of the funds differs.
"""

from dataclasses import replace
from decimal import ROUND_DOWN, Decimal, InvalidOperation

import structlog

from ..core.entities import (
    Dispute,
    DisputeStatus,
    DomainEvent,
    EscrowStatus,
    ResolutionOutcome,
    ResolutionRecord,
    TaskStatus,
    WalletEventType,
    ensure_escrow_transition,
    ensure_transition,
)
from ..core.exceptions import (
    AlreadyResolvedError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..core.interfaces import IEventBus, UnitOfWorkFactory
from .ledger_service import LedgerService
from .publishing import Clock, publish_all, utcnow
from .task_service import TaskService

logger = structlog.get_logger()


def split_amounts(gross_amount: int, doer_ratio: Decimal) -> tuple[int, int]:
    """
    Split a gross amount between doer and poster

    The doer share is rounded down; the remainder (including any odd
    minor unit) goes to the poster, so the two always sum to gross.
    """
    doer_amount = int((Decimal(gross_amount) * doer_ratio).to_integral_value(rounding=ROUND_DOWN))
    return doer_amount, gross_amount - doer_amount


def _parse_ratio(split_ratio) -> Decimal:
    try:
        ratio = Decimal(str(split_ratio))
    except InvalidOperation:
        raise ValidationError(f"Invalid split ratio: {split_ratio!r}") from None
    if not ratio.is_finite() or not Decimal(0) <= ratio <= Decimal(1):
        raise ValidationError("split_ratio must be between 0 and 1")
    return ratio


class DisputeService:
    """
    Dispute Resolver

    Outcomes:
    - approve: net payout to the doer, platform fee to the platform
    - reject: full refund of the gross amount to the poster
    - split: doer gets floor(gross * ratio), poster the rest, no fee
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        ledger: LedgerService,
        task_service: TaskService,
        event_bus: IEventBus | None = None,
        clock: Clock = utcnow,
    ):
        self._uow_factory = uow_factory
        self._ledger = ledger
        self._task_service = task_service
        self._event_bus = event_bus
        self._clock = clock

    async def resolve_dispute(
        self,
        dispute_id: str,
        outcome: ResolutionOutcome | str,
        resolver_id: str,
        split_ratio: Decimal | float | str | None = None,
        notes: str | None = None,
    ) -> ResolutionRecord:
        """
        Apply a resolution to an open dispute

        Args:
            dispute_id: Dispute to resolve
            outcome: approve, reject or split
            resolver_id: Admin performing the resolution
            split_ratio: Doer's share in [0, 1]; required for split only
            notes: Free-form resolution notes

        Raises:
            AlreadyResolvedError: Dispute was resolved before, or concurrently
            NotFoundError: Unknown dispute
            ValidationError: Bad outcome or ratio
        """
        try:
            outcome = ResolutionOutcome(outcome)
        except ValueError:
            raise ValidationError(f"Unknown resolution outcome: {outcome}") from None

        ratio: Decimal | None = None
        if outcome == ResolutionOutcome.SPLIT:
            if split_ratio is None:
                raise ValidationError("split_ratio is required for a split resolution")
            ratio = _parse_ratio(split_ratio)
        elif split_ratio is not None:
            raise ValidationError("split_ratio only applies to a split resolution")

        now = self._clock()
        async with self._uow_factory() as uow:
            dispute = await uow.disputes.get(dispute_id)
            if dispute is None:
                raise NotFoundError(f"Dispute {dispute_id} not found")
            if dispute.is_resolved:
                raise AlreadyResolvedError(dispute_id)

            task = await uow.tasks.get(dispute.task_id)
            escrow = await uow.escrows.get(dispute.escrow_id)
            if task is None or escrow is None:
                raise InternalError(f"Dispute {dispute_id} references missing records")
            if task.status != TaskStatus.DISPUTED:
                raise InvalidStateError(task.status.value, TaskStatus.COMPLETED.value)

            if outcome == ResolutionOutcome.APPROVE:
                doer_amount, poster_amount = escrow.net_payout, 0
                platform_fee = escrow.platform_fee
                escrow_target = EscrowStatus.RELEASED
            elif outcome == ResolutionOutcome.REJECT:
                doer_amount, poster_amount, platform_fee = 0, escrow.gross_amount, 0
                escrow_target = EscrowStatus.REFUNDED
            else:
                doer_amount, poster_amount = split_amounts(escrow.gross_amount, ratio)
                platform_fee = 0
                escrow_target = EscrowStatus.RELEASED

            if doer_amount is None or platform_fee is None:
                raise InternalError(f"Escrow {escrow.escrow_id} has no locked fee breakdown")

            resolved = replace(
                dispute,
                status=DisputeStatus.RESOLVED,
                outcome=outcome,
                split_ratio=ratio,
                doer_amount=doer_amount,
                poster_amount=poster_amount,
                platform_fee=platform_fee,
                resolver_id=resolver_id,
                resolution_notes=notes,
                resolved_at=now,
            )
            if not await uow.disputes.mark_resolved(resolved):
                raise AlreadyResolvedError(dispute_id)

            ensure_transition(task.status, TaskStatus.COMPLETED)
            if not await uow.tasks.transition(
                task.task_id,
                TaskStatus.DISPUTED,
                TaskStatus.COMPLETED,
                completed_at=now,
                updated_at=now,
            ):
                raise InvalidStateError(task.status.value, TaskStatus.COMPLETED.value)

            ensure_escrow_transition(escrow.status, escrow_target)
            if not await uow.escrows.transition(
                escrow.escrow_id, EscrowStatus.DISPUTED, escrow_target, released_at=now
            ):
                raise InternalError(f"Escrow {escrow.escrow_id} is not locked by this dispute")

            if outcome == ResolutionOutcome.APPROVE:
                await self._task_service.pay_out(
                    uow, escrow, WalletEventType.DISPUTE_RESOLUTION, resolver_id
                )
            else:
                if doer_amount > 0:
                    await self._ledger.apply_credit(
                        uow,
                        escrow.doer_id,
                        doer_amount,
                        WalletEventType.DISPUTE_RESOLUTION,
                        task_id=task.task_id,
                        escrow_id=escrow.escrow_id,
                        actor_id=resolver_id,
                    )
                if poster_amount > 0:
                    await self._ledger.apply_credit(
                        uow,
                        escrow.poster_id,
                        poster_amount,
                        WalletEventType.DISPUTE_REFUND,
                        task_id=task.task_id,
                        escrow_id=escrow.escrow_id,
                        actor_id=resolver_id,
                    )

            record = ResolutionRecord(
                dispute_id=dispute_id,
                task_id=task.task_id,
                outcome=outcome,
                doer_amount=doer_amount,
                poster_amount=poster_amount,
                platform_fee=platform_fee,
                resolver_id=resolver_id,
                resolved_at=now,
            )
            await self._task_service.record_event(
                uow, task.task_id, "dispute_resolved", resolver_id, "admin",
                TaskStatus.DISPUTED, TaskStatus.COMPLETED, now,
                metadata=record.to_dict(),
            )
            uow.collect(DomainEvent(event_type="dispute.resolved", payload=record.to_dict()))
        await publish_all(self._event_bus, uow.pending_events)

        logger.info(
            "dispute_resolved",
            dispute_id=dispute_id,
            task_id=task.task_id,
            outcome=outcome.value,
            doer_amount=doer_amount,
            poster_amount=poster_amount,
            platform_fee=platform_fee,
            resolver_id=resolver_id,
        )
        return record

    async def get_dispute(self, dispute_id: str) -> Dispute:
        async with self._uow_factory() as uow:
            dispute = await uow.disputes.get(dispute_id)
        if dispute is None:
            raise NotFoundError(f"Dispute {dispute_id} not found")
        return dispute

    async def get_dispute_for_task(self, task_id: str) -> Dispute:
        async with self._uow_factory() as uow:
            dispute = await uow.disputes.get_by_task(task_id)
        if dispute is None:
            raise NotFoundError(f"No dispute for task {task_id}")
        return dispute

    async def list_disputes(
        self,
        status: DisputeStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Dispute]:
        async with self._uow_factory() as uow:
            return await uow.disputes.list_disputes(status=status, limit=limit, offset=offset)
