"""FastAPI Dependencies for TaskEscrow

Provides dependency injection for core services.
"""

from typing import Annotated

from fastapi import Depends, Header

from ..core.fees import FeeSchedule
from ..services import (
    AutoReleaseScheduler,
    DisputeService,
    IdempotencyGuard,
    LedgerService,
    RateLimiter,
    TaskService,
)

# Global service instances (initialized in lifespan)
_task_service: TaskService | None = None
_ledger_service: LedgerService | None = None
_dispute_service: DisputeService | None = None
_idempotency_guard: IdempotencyGuard | None = None
_rate_limiter: RateLimiter | None = None
_scheduler: AutoReleaseScheduler | None = None
_fee_schedule: FeeSchedule | None = None


def init_services(
    task_service: TaskService,
    ledger_service: LedgerService,
    dispute_service: DisputeService,
    idempotency_guard: IdempotencyGuard,
    rate_limiter: RateLimiter,
    scheduler: AutoReleaseScheduler,
    fee_schedule: FeeSchedule,
) -> None:
    """Initialize global service instances (called from lifespan)"""
    global _task_service, _ledger_service, _dispute_service
    global _idempotency_guard, _rate_limiter, _scheduler, _fee_schedule

    _task_service = task_service
    _ledger_service = ledger_service
    _dispute_service = dispute_service
    _idempotency_guard = idempotency_guard
    _rate_limiter = rate_limiter
    _scheduler = scheduler
    _fee_schedule = fee_schedule


def _require(value, name: str):
    if value is None:
        raise RuntimeError(f"{name} not initialized")
    return value


def get_task_service() -> TaskService:
    return _require(_task_service, "TaskService")


def get_ledger_service() -> LedgerService:
    return _require(_ledger_service, "LedgerService")


def get_dispute_service() -> DisputeService:
    return _require(_dispute_service, "DisputeService")


def get_idempotency_guard() -> IdempotencyGuard:
    return _require(_idempotency_guard, "IdempotencyGuard")


def get_rate_limiter() -> RateLimiter:
    return _require(_rate_limiter, "RateLimiter")


def get_scheduler() -> AutoReleaseScheduler:
    return _require(_scheduler, "AutoReleaseScheduler")


def get_fee_schedule() -> FeeSchedule:
    return _require(_fee_schedule, "FeeSchedule")


# Type aliases for dependency injection
TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]
LedgerServiceDep = Annotated[LedgerService, Depends(get_ledger_service)]
DisputeServiceDep = Annotated[DisputeService, Depends(get_dispute_service)]
IdempotencyGuardDep = Annotated[IdempotencyGuard, Depends(get_idempotency_guard)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]
SchedulerDep = Annotated[AutoReleaseScheduler, Depends(get_scheduler)]
FeeScheduleDep = Annotated[FeeSchedule, Depends(get_fee_schedule)]

IdempotencyKeyHeader = Annotated[str | None, Header(alias="X-Idempotency-Key")]
