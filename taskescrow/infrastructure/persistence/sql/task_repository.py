"""SQL Implementation of ITaskRepository and ITaskEventRepository

Bound to the session of a unit of work. Status changes are conditional
updates: ``UPDATE ... WHERE task_id = :id AND status = :expected``. The
affected-row count decides which of several concurrent callers won.
"""

from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.entities import Task, TaskEvent, TaskStatus
from ....core.interfaces import ITaskEventRepository, ITaskRepository
from .models import TaskEventModel, TaskModel, as_utc


def _model_to_task(row: TaskModel) -> Task:
    return Task(
        task_id=row.task_id,
        poster_id=row.poster_id,
        doer_id=row.doer_id,
        title=row.title or "",
        description=row.description or "",
        reward_amount=row.reward_amount,
        status=TaskStatus(row.status),
        deadline=as_utc(row.deadline),
        auto_release_at=as_utc(row.auto_release_at),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        accepted_at=as_utc(row.accepted_at),
        started_at=as_utc(row.started_at),
        submitted_at=as_utc(row.submitted_at),
        completed_at=as_utc(row.completed_at),
        cancelled_at=as_utc(row.cancelled_at),
    )


class SqlTaskRepository(ITaskRepository):
    """SQL-backed task storage"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, task: Task) -> None:
        self._session.add(
            TaskModel(
                task_id=task.task_id,
                poster_id=task.poster_id,
                doer_id=task.doer_id,
                title=task.title,
                description=task.description,
                reward_amount=task.reward_amount,
                status=task.status.value,
                deadline=task.deadline,
                auto_release_at=task.auto_release_at,
                created_at=task.created_at,
                updated_at=task.updated_at,
            )
        )
        await self._session.flush()

    async def get(self, task_id: str) -> Task | None:
        row = await self._session.scalar(
            select(TaskModel)
            .where(TaskModel.task_id == task_id)
            .execution_options(populate_existing=True)
        )
        return _model_to_task(row) if row else None

    async def transition(
        self,
        task_id: str,
        expected: TaskStatus,
        new: TaskStatus,
        **fields,
    ) -> bool:
        values = {"status": new.value, "updated_at": datetime.now(UTC)}
        values.update(fields)
        result = await self._session.execute(
            update(TaskModel)
            .where(TaskModel.task_id == task_id, TaskModel.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def find_due_for_auto_release(self, now: datetime, limit: int = 100) -> list[Task]:
        rows = await self._session.scalars(
            select(TaskModel)
            .where(
                TaskModel.status == TaskStatus.SUBMITTED.value,
                TaskModel.auto_release_at.is_not(None),
                TaskModel.auto_release_at <= now,
            )
            .order_by(TaskModel.auto_release_at)
            .limit(limit)
        )
        return [_model_to_task(r) for r in rows]

    async def list_tasks(
        self,
        poster_id: str | None = None,
        doer_id: str | None = None,
        status: TaskStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Task]:
        stmt = select(TaskModel)
        if poster_id:
            stmt = stmt.where(TaskModel.poster_id == poster_id)
        if doer_id:
            stmt = stmt.where(TaskModel.doer_id == doer_id)
        if status:
            stmt = stmt.where(TaskModel.status == status.value)
        stmt = stmt.order_by(TaskModel.created_at.desc()).limit(limit).offset(offset)
        rows = await self._session.scalars(stmt)
        return [_model_to_task(r) for r in rows]


class SqlTaskEventRepository(ITaskEventRepository):
    """Append-only task audit trail"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, event: TaskEvent) -> None:
        self._session.add(
            TaskEventModel(
                event_id=event.event_id,
                task_id=event.task_id,
                event_type=event.event_type,
                actor_id=event.actor_id,
                actor_role=event.actor_role,
                old_status=event.old_status,
                new_status=event.new_status,
                event_metadata=event.metadata or None,
                created_at=event.created_at,
            )
        )
        await self._session.flush()

    async def list_for_task(self, task_id: str) -> list[TaskEvent]:
        rows = await self._session.scalars(
            select(TaskEventModel)
            .where(TaskEventModel.task_id == task_id)
            .order_by(TaskEventModel.id)
        )
        return [
            TaskEvent(
                event_id=r.event_id,
                task_id=r.task_id,
                event_type=r.event_type,
                actor_id=r.actor_id,
                actor_role=r.actor_role,
                old_status=r.old_status,
                new_status=r.new_status,
                metadata=r.event_metadata or {},
                created_at=as_utc(r.created_at),
            )
            for r in rows
        ]
