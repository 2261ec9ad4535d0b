"""Auto-Release API Routes

Lets an external cron trigger a sweep in addition to (or instead of) the
in-process scheduler.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from ..auth import InternalTokenDep
from .dependencies import SchedulerDep

router = APIRouter(prefix="/api/v1/auto-release", tags=["auto-release"])


class SweepResultResponse(BaseModel):
    task_id: str
    status: str
    amount: int | None = None
    message: str | None = None


class SweepResponse(BaseModel):
    processed: int
    results: list[SweepResultResponse]
    timestamp: str


@router.post("/sweep", response_model=SweepResponse, response_model_exclude_none=True)
async def run_sweep(_: InternalTokenDep, scheduler: SchedulerDep):
    """Release every escrow whose review window has lapsed"""
    report = await scheduler.sweep()
    return report.to_dict()
