"""Task API Routes

Route → TaskService → UnitOfWork

Mutations accept an optional X-Idempotency-Key header. A retry with the
same key and body replays the stored response without touching balances.
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from ..auth import PrincipalDep
from ..core.entities import EscrowTransaction, Task, TaskStatus
from .dependencies import (
    IdempotencyGuardDep,
    IdempotencyKeyHeader,
    RateLimiterDep,
    TaskServiceDep,
)
from .disputes import DisputeResponse

router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"])
logger = structlog.get_logger()


# ========== Request/Response Models ==========


class TaskCreateRequest(BaseModel):
    """Request to create a task"""

    title: str = Field(default="", max_length=200)
    description: str = Field(default="", max_length=10000)
    reward_amount: int = Field(..., gt=0, description="Reward in minor currency units")
    deadline: datetime = Field(..., description="ISO-8601 with timezone")


class TaskSubmitRequest(BaseModel):
    """Request to submit work"""

    message: str | None = Field(None, max_length=10000)


class TaskDisputeRequest(BaseModel):
    """Request to dispute submitted work"""

    reason: str = Field(default="", max_length=10000)


class EscrowResponse(BaseModel):
    escrow_id: str
    task_id: str
    poster_id: str
    doer_id: str | None = None
    gross_amount: int
    platform_fee: int | None = None
    fee_percent: str | None = None
    net_payout: int | None = None
    status: str
    created_at: str
    released_at: str | None = None
    auto_release_at: str | None = None


class TaskResponse(BaseModel):
    """Task response model"""

    task_id: str
    poster_id: str
    doer_id: str | None = None
    title: str
    description: str
    reward_amount: int
    status: str
    deadline: str
    auto_release_at: str | None = None
    created_at: str
    updated_at: str
    accepted_at: str | None = None
    started_at: str | None = None
    submitted_at: str | None = None
    completed_at: str | None = None
    cancelled_at: str | None = None
    escrow: EscrowResponse | None = None


class TaskListResponse(BaseModel):
    tasks: list[TaskResponse]
    total: int
    has_more: bool = False


class ReleaseResponse(BaseModel):
    task_id: str
    status: str
    amount: int
    platform_fee: int
    reason: str | None = None


class TaskEventResponse(BaseModel):
    event_id: str
    task_id: str
    event_type: str
    actor_id: str | None = None
    actor_role: str | None = None
    old_status: str | None = None
    new_status: str | None = None
    metadata: dict = Field(default_factory=dict)
    created_at: str


# ========== Helper Functions ==========


def _task_to_response(task: Task, escrow: EscrowTransaction | None = None) -> dict:
    data = task.to_dict()
    data["escrow"] = escrow.to_dict() if escrow else None
    return TaskResponse(**data).model_dump()


async def _task_with_escrow(task_service, task: Task) -> dict:
    escrow = await task_service.get_escrow(task.task_id)
    return _task_to_response(task, escrow)


# ========== Queries ==========


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    principal: PrincipalDep,
    role: str = Query("poster", description="List tasks where the caller is poster or doer"),
    status: str | None = Query(None, description="Filter by status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    task_service: TaskServiceDep = None,
):
    """List the caller's tasks"""
    if role not in ("poster", "doer"):
        raise HTTPException(status_code=400, detail=f"Invalid role: {role}")

    task_status = None
    if status:
        try:
            task_status = TaskStatus(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {status}")

    tasks = await task_service.list_tasks(
        poster_id=principal.user_id if role == "poster" else None,
        doer_id=principal.user_id if role == "doer" else None,
        status=task_status,
        limit=limit + 1,  # Get one extra to check has_more
        offset=offset,
    )

    has_more = len(tasks) > limit
    if has_more:
        tasks = tasks[:limit]

    return TaskListResponse(
        tasks=[_task_to_response(t) for t in tasks],
        total=len(tasks),
        has_more=has_more,
    )


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, principal: PrincipalDep, task_service: TaskServiceDep = None):
    """Get task details with its escrow"""
    task = await task_service.get_task(task_id)
    return await _task_with_escrow(task_service, task)


@router.get("/{task_id}/events", response_model=list[TaskEventResponse])
async def get_task_events(
    task_id: str, principal: PrincipalDep, task_service: TaskServiceDep = None
):
    """Audit trail of a task, oldest first"""
    events = await task_service.get_task_history(task_id)
    return [e.to_dict() for e in events]


# ========== Lifecycle ==========


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    request: TaskCreateRequest,
    principal: PrincipalDep,
    guard: IdempotencyGuardDep,
    rate_limiter: RateLimiterDep,
    task_service: TaskServiceDep,
    idempotency_key: IdempotencyKeyHeader = None,
):
    """
    Create a task and fund its escrow from the caller's wallet

    Rate limited (task_create).
    """

    async def operation() -> dict:
        await rate_limiter.enforce(principal.user_id, "task_create")
        task = await task_service.create_task(
            poster_id=principal.user_id,
            reward_amount=request.reward_amount,
            deadline=request.deadline,
            title=request.title,
            description=request.description,
        )
        return await _task_with_escrow(task_service, task)

    return await guard.execute(
        idempotency_key,
        principal.user_id,
        "tasks.create",
        request.model_dump(mode="json"),
        operation,
    )


@router.post("/{task_id}/accept", response_model=TaskResponse)
async def accept_task(
    task_id: str,
    principal: PrincipalDep,
    guard: IdempotencyGuardDep,
    rate_limiter: RateLimiterDep,
    task_service: TaskServiceDep,
    idempotency_key: IdempotencyKeyHeader = None,
):
    """
    Accept an open task as doer and lock the fee breakdown

    Rate limited (task_accept).
    """

    async def operation() -> dict:
        await rate_limiter.enforce(principal.user_id, "task_accept")
        task = await task_service.accept_task(task_id, principal.user_id)
        return await _task_with_escrow(task_service, task)

    return await guard.execute(
        idempotency_key, principal.user_id, "tasks.accept", {"task_id": task_id}, operation
    )


@router.post("/{task_id}/start", response_model=TaskResponse)
async def start_task(
    task_id: str,
    principal: PrincipalDep,
    guard: IdempotencyGuardDep,
    task_service: TaskServiceDep,
    idempotency_key: IdempotencyKeyHeader = None,
):
    """Start work on an accepted task (assigned doer only)"""

    async def operation() -> dict:
        task = await task_service.start_task(task_id, principal.user_id)
        return await _task_with_escrow(task_service, task)

    return await guard.execute(
        idempotency_key, principal.user_id, "tasks.start", {"task_id": task_id}, operation
    )


@router.post("/{task_id}/submit", response_model=TaskResponse)
async def submit_task(
    task_id: str,
    principal: PrincipalDep,
    guard: IdempotencyGuardDep,
    task_service: TaskServiceDep,
    request: TaskSubmitRequest | None = None,
    idempotency_key: IdempotencyKeyHeader = None,
):
    """Submit work and open the review window (assigned doer only)"""
    message = request.message if request else None

    async def operation() -> dict:
        task = await task_service.submit_task(task_id, principal.user_id, message=message)
        return await _task_with_escrow(task_service, task)

    return await guard.execute(
        idempotency_key,
        principal.user_id,
        "tasks.submit",
        {"task_id": task_id, "message": message},
        operation,
    )


@router.post("/{task_id}/approve", response_model=ReleaseResponse)
async def approve_task(
    task_id: str,
    principal: PrincipalDep,
    guard: IdempotencyGuardDep,
    task_service: TaskServiceDep,
    idempotency_key: IdempotencyKeyHeader = None,
):
    """Approve submitted work and release the escrow (poster only)"""

    async def operation() -> dict:
        result = await task_service.approve_task(task_id, principal.user_id)
        return result.to_dict()

    return await guard.execute(
        idempotency_key, principal.user_id, "tasks.approve", {"task_id": task_id}, operation
    )


@router.post("/{task_id}/release", response_model=ReleaseResponse)
async def release_task(
    task_id: str,
    principal: PrincipalDep,
    guard: IdempotencyGuardDep,
    task_service: TaskServiceDep,
    idempotency_key: IdempotencyKeyHeader = None,
):
    """Manually release the escrow of a submitted task (poster or admin)"""

    async def operation() -> dict:
        result = await task_service.release_task(
            task_id, actor_id=principal.user_id, is_admin=principal.is_admin
        )
        return result.to_dict()

    return await guard.execute(
        idempotency_key, principal.user_id, "tasks.release", {"task_id": task_id}, operation
    )


@router.post("/{task_id}/dispute", response_model=DisputeResponse, status_code=201)
async def dispute_task(
    task_id: str,
    principal: PrincipalDep,
    guard: IdempotencyGuardDep,
    task_service: TaskServiceDep,
    request: TaskDisputeRequest | None = None,
    idempotency_key: IdempotencyKeyHeader = None,
):
    """Dispute submitted work and lock the escrow (poster or doer)"""
    reason = request.reason if request else ""

    async def operation() -> dict:
        dispute = await task_service.dispute_task(task_id, principal.user_id, reason=reason)
        return dispute.to_dict()

    return await guard.execute(
        idempotency_key,
        principal.user_id,
        "tasks.dispute",
        {"task_id": task_id, "reason": reason},
        operation,
    )


@router.post("/{task_id}/cancel", response_model=TaskResponse)
async def cancel_task(
    task_id: str,
    principal: PrincipalDep,
    guard: IdempotencyGuardDep,
    task_service: TaskServiceDep,
    idempotency_key: IdempotencyKeyHeader = None,
):
    """Cancel an open or accepted task and refund the poster"""

    async def operation() -> dict:
        task = await task_service.cancel_task(task_id, principal.user_id)
        return await _task_with_escrow(task_service, task)

    return await guard.execute(
        idempotency_key, principal.user_id, "tasks.cancel", {"task_id": task_id}, operation
    )
