"""Task Service

Task/escrow state machine. Every mutation runs in one unit of work: the
status change, the escrow change, the ledger writes and the audit row
commit or roll back together. Races between concurrent callers are
settled by conditional updates on the task status.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from uuid import uuid4

import structlog

from ..core.entities import (
    Dispute,
    DisputeParty,
    DomainEvent,
    EscrowStatus,
    EscrowTransaction,
    Task,
    TaskEvent,
    TaskStatus,
    WalletEventType,
    ensure_transition,
)
from ..core.exceptions import (
    AlreadyAssignedError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..core.fees import DEFAULT_SCHEDULE, FeeSchedule, compute_fee
from ..core.interfaces import IEventBus, IUnitOfWork, UnitOfWorkFactory
from .ledger_service import LedgerService
from .publishing import Clock, publish_all, utcnow

logger = structlog.get_logger()

# Statuses from which the escrow may be paid out to the doer
RELEASABLE_STATUSES = frozenset({TaskStatus.SUBMITTED, TaskStatus.APPROVED})
CANCELLABLE_STATUSES = frozenset({TaskStatus.OPEN, TaskStatus.ACCEPTED})


class ReleaseStatus(str, Enum):
    RELEASED = "released"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ReleaseResult:
    """Outcome of a release attempt"""

    task_id: str
    status: ReleaseStatus
    amount: int = 0  # net paid to the doer
    platform_fee: int = 0
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "status": self.status.value,
            "amount": self.amount,
            "platform_fee": self.platform_fee,
            "reason": self.reason,
        }


class TaskService:
    """
    Task Service

    Orchestrates the task lifecycle:
    - create: fund the escrow from the poster's wallet
    - accept: assign the doer and lock the fee breakdown
    - start / submit: doer progress; submit opens the review window
    - approve / release: pay out net to the doer and fee to the platform
    - dispute: lock the escrow until an admin resolves it
    - cancel: refund the poster before work is delivered
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        ledger: LedgerService,
        fee_schedule: FeeSchedule = DEFAULT_SCHEDULE,
        event_bus: IEventBus | None = None,
        review_window: timedelta = timedelta(hours=24),
        platform_wallet_id: str = "platform",
        clock: Clock = utcnow,
    ):
        """
        Initialize Task Service

        Args:
            uow_factory: Creates a unit of work per operation
            ledger: Wallet ledger used for every balance change
            fee_schedule: Fee tables applied at acceptance
            event_bus: Receives domain events after commit (optional)
            review_window: Time between submission and auto-release
            platform_wallet_id: Wallet credited with platform fees
            clock: Source of the current UTC time
        """
        self._uow_factory = uow_factory
        self._ledger = ledger
        self._fee_schedule = fee_schedule
        self._event_bus = event_bus
        self._review_window = review_window
        self._platform_wallet_id = platform_wallet_id
        self._clock = clock

    # ========== Lifecycle ==========

    async def create_task(
        self,
        poster_id: str,
        reward_amount: int,
        deadline: datetime,
        title: str = "",
        description: str = "",
    ) -> Task:
        """
        Create a task and fund its escrow

        Raises:
            ValidationError: Bad reward or deadline
            InsufficientFundsError: Poster cannot fund the reward
        """
        now = self._clock()
        if isinstance(reward_amount, bool) or not isinstance(reward_amount, int):
            raise ValidationError("reward_amount must be an integer in minor units")
        if reward_amount <= 0:
            raise ValidationError("reward_amount must be positive")
        if deadline.tzinfo is None:
            raise ValidationError("deadline must be timezone-aware")
        if deadline <= now:
            raise ValidationError("deadline must be in the future")

        task = Task(
            task_id=str(uuid4()),
            poster_id=poster_id,
            reward_amount=reward_amount,
            deadline=deadline,
            title=title,
            description=description,
            created_at=now,
            updated_at=now,
        )
        escrow = EscrowTransaction(
            escrow_id=str(uuid4()),
            task_id=task.task_id,
            poster_id=poster_id,
            gross_amount=reward_amount,
            created_at=now,
        )

        async with self._uow_factory() as uow:
            await uow.tasks.add(task)
            await uow.escrows.add(escrow)
            await self._ledger.apply_debit(
                uow,
                poster_id,
                reward_amount,
                WalletEventType.ESCROW_LOCK,
                task_id=task.task_id,
                escrow_id=escrow.escrow_id,
                actor_id=poster_id,
            )
            await self.record_event(
                uow, task.task_id, "created", poster_id, "poster", None, TaskStatus.OPEN, now,
                metadata={"reward_amount": reward_amount},
            )
        await publish_all(self._event_bus, uow.pending_events)

        logger.info(
            "task_created",
            task_id=task.task_id,
            poster_id=poster_id,
            reward_amount=reward_amount,
        )
        return task

    async def accept_task(self, task_id: str, doer_id: str) -> Task:
        """
        Accept an open task and lock the fee breakdown from the doer's
        completed-task count

        Raises:
            AlreadyAssignedError: Task is not open, or another doer won the race
            PermissionDeniedError: Poster tried to accept their own task
        """
        now = self._clock()
        async with self._uow_factory() as uow:
            task = await self._load_task(uow, task_id)
            if task.poster_id == doer_id:
                raise PermissionDeniedError("Poster cannot accept their own task")
            if task.status != TaskStatus.OPEN:
                raise AlreadyAssignedError(task_id, task.status.value)

            won = await uow.tasks.transition(
                task_id,
                TaskStatus.OPEN,
                TaskStatus.ACCEPTED,
                doer_id=doer_id,
                accepted_at=now,
                updated_at=now,
            )
            if not won:
                current = await self._load_task(uow, task_id)
                raise AlreadyAssignedError(task_id, current.status.value)

            escrow = await self._load_escrow(uow, task_id)
            doer_wallet = await uow.wallets.get(doer_id)
            breakdown = compute_fee(
                task.reward_amount,
                doer_wallet.tasks_completed if doer_wallet else 0,
                self._fee_schedule,
            )
            if not await uow.escrows.lock_fee(escrow.escrow_id, doer_id, breakdown):
                raise InternalError(f"Escrow fee for task {task_id} was already locked")

            await self.record_event(
                uow, task_id, "accepted", doer_id, "doer",
                TaskStatus.OPEN, TaskStatus.ACCEPTED, now,
                metadata={"fee": breakdown.to_dict()},
            )
            task = await self._load_task(uow, task_id)
        await publish_all(self._event_bus, uow.pending_events)

        logger.info(
            "task_accepted",
            task_id=task_id,
            doer_id=doer_id,
            fee_percent=str(breakdown.applied_fee_percent),
            platform_fee=breakdown.platform_fee,
        )
        return task

    async def start_task(self, task_id: str, doer_id: str) -> Task:
        """Move an accepted task to in_progress (assigned doer only)"""
        now = self._clock()
        async with self._uow_factory() as uow:
            task = await self._load_task(uow, task_id)
            self._require_doer(task, doer_id)
            await self._transition(uow, task, TaskStatus.IN_PROGRESS, started_at=now, updated_at=now)
            await self.record_event(
                uow, task_id, "started", doer_id, "doer", task.status, TaskStatus.IN_PROGRESS, now
            )
            task = await self._load_task(uow, task_id)
        await publish_all(self._event_bus, uow.pending_events)

        logger.info("task_started", task_id=task_id, doer_id=doer_id)
        return task

    async def submit_task(self, task_id: str, doer_id: str, message: str | None = None) -> Task:
        """
        Deliver work and open the review window

        The escrow auto-releases once ``now + review_window`` has passed
        unless the poster approves or disputes first.
        """
        now = self._clock()
        auto_release_at = now + self._review_window
        async with self._uow_factory() as uow:
            task = await self._load_task(uow, task_id)
            self._require_doer(task, doer_id)
            await self._transition(
                uow,
                task,
                TaskStatus.SUBMITTED,
                submitted_at=now,
                auto_release_at=auto_release_at,
                updated_at=now,
            )
            escrow = await self._load_escrow(uow, task_id)
            await uow.escrows.set_auto_release_at(escrow.escrow_id, auto_release_at)
            await self.record_event(
                uow, task_id, "submitted", doer_id, "doer", task.status, TaskStatus.SUBMITTED, now,
                metadata={"message": message, "auto_release_at": auto_release_at.isoformat()},
            )
            task = await self._load_task(uow, task_id)
        await publish_all(self._event_bus, uow.pending_events)

        logger.info("task_submitted", task_id=task_id, auto_release_at=auto_release_at.isoformat())
        return task

    async def approve_task(self, task_id: str, poster_id: str) -> ReleaseResult:
        """
        Poster approves submitted work: submitted -> completed directly

        Returns a skipped result if the escrow was already released (for
        example by the auto-release sweep a moment earlier).
        """
        now = self._clock()
        async with self._uow_factory() as uow:
            task = await self._load_task(uow, task_id)
            if task.poster_id != poster_id:
                raise PermissionDeniedError("Only the poster can approve this task")
            result = await self._release(
                uow, task, WalletEventType.ESCROW_RELEASE, poster_id, "poster", now
            )
        await publish_all(self._event_bus, uow.pending_events)
        return result

    async def release_task(
        self,
        task_id: str,
        actor_id: str | None = None,
        is_admin: bool = False,
        now: datetime | None = None,
    ) -> ReleaseResult:
        """
        Release the escrow of a submitted task

        Used for manual release (poster or admin) and by the auto-release
        scheduler (no actor). Safe to call concurrently with approve and
        with itself: exactly one call pays out, the others are skipped.
        """
        now = now or self._clock()
        async with self._uow_factory() as uow:
            task = await self._load_task(uow, task_id)
            if actor_id is None:
                event_type, role = WalletEventType.AUTO_RELEASE, "system"
            elif is_admin:
                event_type, role = WalletEventType.ESCROW_RELEASE, "admin"
            elif actor_id == task.poster_id:
                event_type, role = WalletEventType.ESCROW_RELEASE, "poster"
            else:
                raise PermissionDeniedError("Only the poster or an admin can release this escrow")
            result = await self._release(uow, task, event_type, actor_id, role, now)
        await publish_all(self._event_bus, uow.pending_events)
        return result

    async def dispute_task(self, task_id: str, user_id: str, reason: str = "") -> Dispute:
        """
        Dispute submitted work (poster or doer)

        The escrow is locked until the dispute is resolved; approval and
        auto-release fail or skip while it is open.

        Returns:
            The created Dispute
        """
        now = self._clock()
        async with self._uow_factory() as uow:
            task = await self._load_task(uow, task_id)
            if user_id == task.poster_id:
                party = DisputeParty.POSTER
            elif user_id == task.doer_id:
                party = DisputeParty.DOER
            else:
                raise PermissionDeniedError("Only the poster or the doer can dispute this task")

            await self._transition(uow, task, TaskStatus.DISPUTED, updated_at=now)
            escrow = await self._load_escrow(uow, task_id)
            if not await uow.escrows.transition(
                escrow.escrow_id, EscrowStatus.IN_ESCROW, EscrowStatus.DISPUTED
            ):
                raise InvalidStateError(escrow.status.value, EscrowStatus.DISPUTED.value)

            dispute = Dispute(
                dispute_id=str(uuid4()),
                task_id=task_id,
                escrow_id=escrow.escrow_id,
                raised_by=user_id,
                raised_by_role=party,
                reason=reason,
                created_at=now,
            )
            await uow.disputes.add(dispute)
            await self.record_event(
                uow, task_id, "disputed", user_id, party.value,
                task.status, TaskStatus.DISPUTED, now,
                metadata={"dispute_id": dispute.dispute_id, "reason": reason},
            )
        await publish_all(self._event_bus, uow.pending_events)

        logger.info(
            "task_disputed",
            task_id=task_id,
            dispute_id=dispute.dispute_id,
            raised_by=user_id,
            party=party.value,
        )
        return dispute

    async def cancel_task(self, task_id: str, poster_id: str) -> Task:
        """
        Cancel before work is delivered and refund the poster

        Raises:
            InvalidStateError: Task is past the accepted stage
            PermissionDeniedError: Caller is not the poster
        """
        now = self._clock()
        async with self._uow_factory() as uow:
            task = await self._load_task(uow, task_id)
            if task.poster_id != poster_id:
                raise PermissionDeniedError("Only the poster can cancel this task")
            if task.status not in CANCELLABLE_STATUSES:
                raise InvalidStateError(task.status.value, TaskStatus.CANCELLED.value)

            await self._transition(uow, task, TaskStatus.CANCELLED, cancelled_at=now, updated_at=now)
            escrow = await self._load_escrow(uow, task_id)
            if not await uow.escrows.transition(
                escrow.escrow_id, EscrowStatus.IN_ESCROW, EscrowStatus.REFUNDED, released_at=now
            ):
                raise InternalError(f"Escrow {escrow.escrow_id} is not held; cannot refund")
            await self._ledger.apply_credit(
                uow,
                task.poster_id,
                escrow.gross_amount,
                WalletEventType.ESCROW_REFUND,
                task_id=task_id,
                escrow_id=escrow.escrow_id,
                actor_id=poster_id,
            )
            await self.record_event(
                uow, task_id, "cancelled", poster_id, "poster",
                task.status, TaskStatus.CANCELLED, now,
                metadata={"refunded": escrow.gross_amount},
            )
            task = await self._load_task(uow, task_id)
        await publish_all(self._event_bus, uow.pending_events)

        logger.info("task_cancelled", task_id=task_id, refunded=escrow.gross_amount)
        return task

    # ========== Queries ==========

    async def get_task(self, task_id: str) -> Task:
        async with self._uow_factory() as uow:
            return await self._load_task(uow, task_id)

    async def get_escrow(self, task_id: str) -> EscrowTransaction:
        async with self._uow_factory() as uow:
            return await self._load_escrow(uow, task_id)

    async def list_tasks(
        self,
        poster_id: str | None = None,
        doer_id: str | None = None,
        status: TaskStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Task]:
        async with self._uow_factory() as uow:
            return await uow.tasks.list_tasks(
                poster_id=poster_id, doer_id=doer_id, status=status, limit=limit, offset=offset
            )

    async def get_task_history(self, task_id: str) -> list[TaskEvent]:
        async with self._uow_factory() as uow:
            await self._load_task(uow, task_id)
            return await uow.task_events.list_for_task(task_id)

    async def find_due_for_auto_release(self, now: datetime, limit: int = 100) -> list[Task]:
        async with self._uow_factory() as uow:
            return await uow.tasks.find_due_for_auto_release(now, limit=limit)

    # ========== Internal ==========

    async def _release(
        self,
        uow: IUnitOfWork,
        task: Task,
        event_type: WalletEventType,
        actor_id: str | None,
        actor_role: str,
        now: datetime,
    ) -> ReleaseResult:
        escrow = await self._load_escrow(uow, task.task_id)

        if task.status not in RELEASABLE_STATUSES:
            if escrow.status == EscrowStatus.RELEASED:
                return self._skipped(task.task_id)
            if escrow.status == EscrowStatus.DISPUTED:
                raise InvalidStateError(
                    task.status.value,
                    TaskStatus.COMPLETED.value,
                    f"Escrow for task {task.task_id} is locked by an open dispute",
                )
            raise InvalidStateError(task.status.value, TaskStatus.COMPLETED.value)

        won = await uow.tasks.transition(
            task.task_id, task.status, TaskStatus.COMPLETED, completed_at=now, updated_at=now
        )
        if not won:
            escrow = await self._load_escrow(uow, task.task_id)
            if escrow.status == EscrowStatus.RELEASED:
                return self._skipped(task.task_id)
            current = await self._load_task(uow, task.task_id)
            raise InvalidStateError(current.status.value, TaskStatus.COMPLETED.value)

        if not escrow.fee_locked or escrow.doer_id is None:
            raise InternalError(f"Escrow {escrow.escrow_id} has no locked fee breakdown")
        if not await uow.escrows.transition(
            escrow.escrow_id, EscrowStatus.IN_ESCROW, EscrowStatus.RELEASED, released_at=now
        ):
            raise InternalError(
                f"Escrow {escrow.escrow_id} is {escrow.status.value}, expected in_escrow"
            )

        await self.pay_out(uow, escrow, event_type, actor_id)
        await self.record_event(
            uow, task.task_id,
            "auto_released" if event_type == WalletEventType.AUTO_RELEASE else "released",
            actor_id, actor_role, task.status, TaskStatus.COMPLETED, now,
            metadata={"net_payout": escrow.net_payout, "platform_fee": escrow.platform_fee},
        )

        logger.info(
            "escrow_released",
            task_id=task.task_id,
            escrow_id=escrow.escrow_id,
            doer_id=escrow.doer_id,
            amount=escrow.net_payout,
            platform_fee=escrow.platform_fee,
            trigger=event_type.value,
        )
        return ReleaseResult(
            task_id=task.task_id,
            status=ReleaseStatus.RELEASED,
            amount=escrow.net_payout,
            platform_fee=escrow.platform_fee,
        )

    async def pay_out(
        self,
        uow: IUnitOfWork,
        escrow: EscrowTransaction,
        event_type: WalletEventType,
        actor_id: str | None,
    ) -> None:
        """Credit the doer with the net payout and the platform with the fee"""
        await self._ledger.apply_credit(
            uow,
            escrow.doer_id,
            escrow.net_payout,
            event_type,
            task_id=escrow.task_id,
            escrow_id=escrow.escrow_id,
            actor_id=actor_id,
        )
        if escrow.platform_fee:
            await self._ledger.apply_credit(
                uow,
                self._platform_wallet_id,
                escrow.platform_fee,
                WalletEventType.PLATFORM_FEE,
                task_id=escrow.task_id,
                escrow_id=escrow.escrow_id,
                actor_id=actor_id,
            )

    @staticmethod
    def _skipped(task_id: str) -> ReleaseResult:
        logger.info("escrow_release_skipped", task_id=task_id, reason="already_released")
        return ReleaseResult(
            task_id=task_id,
            status=ReleaseStatus.SKIPPED,
            reason="already_released",
        )

    async def _transition(self, uow: IUnitOfWork, task: Task, to_status: TaskStatus, **fields) -> None:
        ensure_transition(task.status, to_status)
        if not await uow.tasks.transition(task.task_id, task.status, to_status, **fields):
            current = await self._load_task(uow, task.task_id)
            raise InvalidStateError(current.status.value, to_status.value)

    @staticmethod
    def _require_doer(task: Task, doer_id: str) -> None:
        if task.doer_id != doer_id:
            raise PermissionDeniedError("Only the assigned doer can do this")

    @staticmethod
    async def _load_task(uow: IUnitOfWork, task_id: str) -> Task:
        task = await uow.tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    @staticmethod
    async def _load_escrow(uow: IUnitOfWork, task_id: str) -> EscrowTransaction:
        escrow = await uow.escrows.get_by_task(task_id)
        if escrow is None:
            raise InternalError(f"Task {task_id} has no escrow")
        return escrow

    async def record_event(
        self,
        uow: IUnitOfWork,
        task_id: str,
        event_type: str,
        actor_id: str | None,
        actor_role: str | None,
        old_status: TaskStatus | None,
        new_status: TaskStatus | None,
        now: datetime,
        metadata: dict | None = None,
    ) -> None:
        """Append the audit row and queue the matching domain event"""
        event = TaskEvent(
            event_id=str(uuid4()),
            task_id=task_id,
            event_type=event_type,
            actor_id=actor_id,
            actor_role=actor_role,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value if new_status else None,
            metadata=metadata or {},
            created_at=now,
        )
        await uow.task_events.append(event)
        uow.collect(DomainEvent(event_type=f"task.{event_type}", payload=event.to_dict()))
