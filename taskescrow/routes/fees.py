"""Fee API Routes"""

from fastapi import APIRouter, Query
from pydantic import BaseModel

from ..core.fees import compute_fee
from .dependencies import FeeScheduleDep

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


class FeePreviewResponse(BaseModel):
    gross_amount: int
    tasks_completed: int
    task_tier_fee_percent: str
    value_tier_fee_percent: str | None = None
    applied_fee_percent: str
    platform_fee: int
    net_payout: int


@router.get("/preview", response_model=FeePreviewResponse)
async def preview_fee(
    fee_schedule: FeeScheduleDep,
    gross_amount: int = Query(..., gt=0, description="Reward in minor currency units"),
    tasks_completed: int = Query(0, ge=0, description="Doer's completed task count"),
):
    """
    Fee breakdown a doer would get on acceptance

    The applied rate is the lower of the task-count tier and the
    task-value tier.
    """
    return compute_fee(gross_amount, tasks_completed, fee_schedule).to_dict()
