"""Application Services

Business logic orchestration on top of the core interfaces.
"""

from .auto_release_scheduler import AutoReleaseScheduler, SweepReport, SweepResult
from .dispute_service import DisputeService, split_amounts
from .idempotency_service import Admission, IdempotencyGuard, request_hash
from .ledger_service import LedgerEntry, LedgerService, ReconciliationReport
from .rate_limiter import RateLimitDecision, RateLimiter, RateLimitRule
from .task_service import ReleaseResult, ReleaseStatus, TaskService

__all__ = [
    "TaskService",
    "ReleaseResult",
    "ReleaseStatus",
    "LedgerService",
    "LedgerEntry",
    "ReconciliationReport",
    "DisputeService",
    "split_amounts",
    "IdempotencyGuard",
    "Admission",
    "request_hash",
    "RateLimiter",
    "RateLimitRule",
    "RateLimitDecision",
    "AutoReleaseScheduler",
    "SweepReport",
    "SweepResult",
]
