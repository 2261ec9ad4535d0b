"""Auto-Release Scheduler

Releases escrows whose review window lapsed without approval or dispute.
A sweep never stops at a failing task: every due task gets its own
outcome in the report. Running several sweeps at once is safe because
each release goes through the same conditional transition as approval.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from .publishing import Clock, utcnow
from .task_service import ReleaseStatus, TaskService

logger = structlog.get_logger()


@dataclass(frozen=True)
class SweepResult:
    task_id: str
    status: str  # released, skipped or error
    amount: int = 0
    message: str | None = None

    def to_dict(self) -> dict:
        data = {"task_id": self.task_id, "status": self.status}
        if self.status == ReleaseStatus.RELEASED.value:
            data["amount"] = self.amount
        if self.message:
            data["message"] = self.message
        return data


@dataclass(frozen=True)
class SweepReport:
    processed: int
    timestamp: datetime
    results: list[SweepResult] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "results": [r.to_dict() for r in self.results],
            "timestamp": self.timestamp.isoformat(),
        }


class AutoReleaseScheduler:
    """
    Periodic sweep over submitted tasks past their auto-release time

    Usage:
        scheduler = AutoReleaseScheduler(task_service, interval_seconds=300)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        task_service: TaskService,
        interval_seconds: float = 300,
        batch_size: int = 100,
        clock: Clock = utcnow,
    ):
        self._task_service = task_service
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._clock = clock
        self._running = False
        self._sweep_task: asyncio.Task | None = None

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        """Release every task due at ``now`` (one batch)"""
        now = now or self._clock()
        due = await self._task_service.find_due_for_auto_release(now, limit=self.batch_size)

        results: list[SweepResult] = []
        for task in due:
            try:
                outcome = await self._task_service.release_task(task.task_id, now=now)
            except Exception as e:
                logger.error("auto_release_failed", task_id=task.task_id, error=str(e))
                results.append(SweepResult(task_id=task.task_id, status="error", message=str(e)))
                continue

            if outcome.status == ReleaseStatus.RELEASED:
                results.append(
                    SweepResult(task_id=task.task_id, status="released", amount=outcome.amount)
                )
            else:
                results.append(
                    SweepResult(
                        task_id=task.task_id,
                        status="skipped",
                        message="Escrow already released",
                    )
                )

        report = SweepReport(processed=len(due), timestamp=now, results=results)
        logger.info(
            "auto_release_sweep_completed",
            processed=report.processed,
            released=report.count("released"),
            skipped=report.count("skipped"),
            errors=report.count("error"),
        )
        return report

    # ========== Background Loop ==========

    async def start(self) -> None:
        """Start the periodic sweep"""
        if self._running:
            return
        self._running = True
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info("auto_release_scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop the periodic sweep and wait for it to exit"""
        self._running = False
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        logger.info("auto_release_scheduler_stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("auto_release_sweep_failed", error=str(e))
