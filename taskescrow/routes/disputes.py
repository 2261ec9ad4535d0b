"""Dispute API Routes

Disputes are opened from the task routes (POST /tasks/{id}/dispute) and
resolved here by an admin.
"""

from decimal import Decimal

import structlog
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from ..auth import AdminDep, PrincipalDep
from ..core.entities import DisputeStatus
from .dependencies import (
    DisputeServiceDep,
    IdempotencyGuardDep,
    IdempotencyKeyHeader,
    TaskServiceDep,
)

router = APIRouter(prefix="/api/v1/disputes", tags=["disputes"])
logger = structlog.get_logger()


# ========== Request/Response Models ==========


class DisputeResolveRequest(BaseModel):
    """Admin resolution of an open dispute"""

    outcome: str = Field(..., description="approve, reject or split")
    split_ratio: Decimal | None = Field(
        None, ge=0, le=1, description="Doer's share, required for split"
    )
    notes: str | None = Field(None, max_length=10000)


class DisputeResponse(BaseModel):
    dispute_id: str
    task_id: str
    escrow_id: str
    raised_by: str
    raised_by_role: str
    reason: str
    status: str
    outcome: str | None = None
    split_ratio: str | None = None
    doer_amount: int | None = None
    poster_amount: int | None = None
    platform_fee: int | None = None
    resolver_id: str | None = None
    resolution_notes: str | None = None
    created_at: str
    resolved_at: str | None = None


class ResolutionResponse(BaseModel):
    dispute_id: str
    task_id: str
    outcome: str
    doer_amount: int
    poster_amount: int
    platform_fee: int
    resolver_id: str
    resolved_at: str


class DisputeListResponse(BaseModel):
    disputes: list[DisputeResponse]
    total: int
    has_more: bool = False


# ========== Endpoints ==========


@router.get("", response_model=DisputeListResponse)
async def list_disputes(
    admin: AdminDep,
    status: str | None = Query(None, description="Filter by status: open, resolved"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    dispute_service: DisputeServiceDep = None,
):
    """List disputes (admin only)"""
    dispute_status = None
    if status:
        try:
            dispute_status = DisputeStatus(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {status}")

    disputes = await dispute_service.list_disputes(
        status=dispute_status, limit=limit + 1, offset=offset
    )
    has_more = len(disputes) > limit
    if has_more:
        disputes = disputes[:limit]

    return DisputeListResponse(
        disputes=[d.to_dict() for d in disputes],
        total=len(disputes),
        has_more=has_more,
    )


@router.get("/{dispute_id}", response_model=DisputeResponse)
async def get_dispute(
    dispute_id: str,
    principal: PrincipalDep,
    dispute_service: DisputeServiceDep,
    task_service: TaskServiceDep,
):
    """Get a dispute (admin, or the poster or doer of its task)"""
    dispute = await dispute_service.get_dispute(dispute_id)
    if not principal.is_admin:
        task = await task_service.get_task(dispute.task_id)
        if principal.user_id not in (task.poster_id, task.doer_id):
            raise HTTPException(status_code=403, detail="Not a party to this dispute")
    return dispute.to_dict()


@router.post("/{dispute_id}/resolve", response_model=ResolutionResponse)
async def resolve_dispute(
    dispute_id: str,
    request: DisputeResolveRequest,
    admin: AdminDep,
    guard: IdempotencyGuardDep,
    dispute_service: DisputeServiceDep,
    idempotency_key: IdempotencyKeyHeader = None,
):
    """Resolve an open dispute (admin only)"""

    async def operation() -> dict:
        record = await dispute_service.resolve_dispute(
            dispute_id,
            request.outcome,
            resolver_id=admin.user_id,
            split_ratio=request.split_ratio,
            notes=request.notes,
        )
        return record.to_dict()

    body = {"dispute_id": dispute_id, **request.model_dump(mode="json")}
    return await guard.execute(idempotency_key, admin.user_id, "disputes.resolve", body, operation)
