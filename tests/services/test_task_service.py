"""Tests for TaskService

Lifecycle, permission checks and concurrent transitions, run against a
real SQLite unit of work.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from taskescrow.core.entities import EscrowStatus, TaskStatus
from taskescrow.core.exceptions import (
    AlreadyAssignedError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from taskescrow.services import ReleaseStatus

# ============================================================================
# Helpers
# ============================================================================


@pytest.fixture
def deadline(clock):
    return clock.now + timedelta(days=7)


@pytest.fixture
async def open_task(task_service, ledger, deadline):
    await ledger.deposit("poster-1", 100_000)
    return await task_service.create_task("poster-1", 50_000, deadline, title="Write docs")


# ============================================================================
# Create
# ============================================================================


class TestCreateTask:
    async def test_funds_escrow_from_poster_wallet(self, task_service, ledger, open_task):
        escrow = await task_service.get_escrow(open_task.task_id)
        wallet = await ledger.get_balance("poster-1")

        assert open_task.status == TaskStatus.OPEN
        assert escrow.status == EscrowStatus.IN_ESCROW
        assert escrow.gross_amount == 50_000
        assert escrow.platform_fee is None
        assert escrow.net_payout is None
        assert wallet.balance == 50_000

    async def test_insufficient_funds_leaves_nothing_behind(self, task_service, ledger, deadline):
        await ledger.deposit("poster-1", 10_000)

        with pytest.raises(InsufficientFundsError):
            await task_service.create_task("poster-1", 50_000, deadline)

        assert await task_service.list_tasks(poster_id="poster-1") == []
        assert (await ledger.get_balance("poster-1")).balance == 10_000

    @pytest.mark.parametrize("reward", [0, -100, 12.5])
    async def test_rejects_bad_reward(self, task_service, deadline, reward):
        with pytest.raises(ValidationError):
            await task_service.create_task("poster-1", reward, deadline)

    async def test_rejects_naive_or_past_deadline(self, task_service, clock):
        with pytest.raises(ValidationError):
            await task_service.create_task("poster-1", 1_000, datetime(2030, 1, 1))
        with pytest.raises(ValidationError):
            await task_service.create_task("poster-1", 1_000, clock.now - timedelta(minutes=1))

    async def test_unknown_task(self, task_service):
        with pytest.raises(NotFoundError):
            await task_service.get_task("missing")


# ============================================================================
# Accept
# ============================================================================


class TestAcceptTask:
    async def test_locks_fee_from_doer_history(self, task_service, open_task):
        task = await task_service.accept_task(open_task.task_id, "doer-1")
        escrow = await task_service.get_escrow(task.task_id)

        assert task.status == TaskStatus.ACCEPTED
        assert task.doer_id == "doer-1"
        assert escrow.doer_id == "doer-1"
        # min(20% task tier, 8% value tier) on 50_000
        assert escrow.platform_fee == 4_000
        assert escrow.net_payout == 46_000
        assert str(escrow.fee_percent) == "8"

    async def test_poster_cannot_accept_own_task(self, task_service, open_task):
        with pytest.raises(PermissionDeniedError):
            await task_service.accept_task(open_task.task_id, "poster-1")

    async def test_second_accept_is_rejected(self, task_service, open_task):
        await task_service.accept_task(open_task.task_id, "doer-1")

        with pytest.raises(AlreadyAssignedError) as exc_info:
            await task_service.accept_task(open_task.task_id, "doer-2")

        assert exc_info.value.code == "already_assigned"
        assert exc_info.value.benign

    async def test_concurrent_accepts_have_one_winner(self, task_service, open_task):
        doers = [f"doer-{i}" for i in range(5)]

        results = await asyncio.gather(
            *(task_service.accept_task(open_task.task_id, d) for d in doers),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(e, AlreadyAssignedError) for e in losers)

        task = await task_service.get_task(open_task.task_id)
        escrow = await task_service.get_escrow(open_task.task_id)
        assert task.doer_id == winners[0].doer_id
        assert escrow.doer_id == task.doer_id


# ============================================================================
# Start / Submit
# ============================================================================


class TestProgress:
    async def test_only_assigned_doer_can_start(self, task_service, open_task):
        await task_service.accept_task(open_task.task_id, "doer-1")

        with pytest.raises(PermissionDeniedError):
            await task_service.start_task(open_task.task_id, "doer-2")

    async def test_submit_opens_review_window(self, task_service, open_task, clock):
        await task_service.accept_task(open_task.task_id, "doer-1")
        await task_service.start_task(open_task.task_id, "doer-1")

        task = await task_service.submit_task(open_task.task_id, "doer-1", message="done")
        escrow = await task_service.get_escrow(open_task.task_id)

        assert task.status == TaskStatus.SUBMITTED
        assert task.auto_release_at == clock.now + timedelta(hours=24)
        assert escrow.auto_release_at == task.auto_release_at

    async def test_cannot_skip_start(self, task_service, open_task):
        await task_service.accept_task(open_task.task_id, "doer-1")

        with pytest.raises(InvalidStateError):
            await task_service.submit_task(open_task.task_id, "doer-1")


# ============================================================================
# Approve / Release
# ============================================================================


class TestRelease:
    async def test_approve_pays_doer_and_platform(self, task_service, ledger, make_submitted_task):
        task = await make_submitted_task()

        result = await task_service.approve_task(task.task_id, "poster-1")

        assert result.status == ReleaseStatus.RELEASED
        assert result.amount == 46_000
        assert result.platform_fee == 4_000

        doer = await ledger.get_balance("doer-1")
        platform = await ledger.get_balance("platform")
        assert doer.balance == 46_000
        assert doer.total_earnings == 46_000
        assert doer.tasks_completed == 1
        assert platform.balance == 4_000
        assert platform.tasks_completed == 0

        task = await task_service.get_task(task.task_id)
        escrow = await task_service.get_escrow(task.task_id)
        assert task.status == TaskStatus.COMPLETED
        assert escrow.status == EscrowStatus.RELEASED

    async def test_second_approve_is_skipped(self, task_service, ledger, make_submitted_task):
        task = await make_submitted_task()
        await task_service.approve_task(task.task_id, "poster-1")

        result = await task_service.approve_task(task.task_id, "poster-1")

        assert result.status == ReleaseStatus.SKIPPED
        assert result.reason == "already_released"
        assert (await ledger.get_balance("doer-1")).balance == 46_000

    async def test_only_poster_can_approve(self, task_service, make_submitted_task):
        task = await make_submitted_task()

        with pytest.raises(PermissionDeniedError):
            await task_service.approve_task(task.task_id, "doer-1")

    async def test_manual_release_permissions(self, task_service, make_submitted_task):
        task = await make_submitted_task()

        with pytest.raises(PermissionDeniedError):
            await task_service.release_task(task.task_id, actor_id="stranger")

        result = await task_service.release_task(task.task_id, actor_id="admin-1", is_admin=True)
        assert result.status == ReleaseStatus.RELEASED

    async def test_release_before_submission_fails(self, task_service, open_task):
        await task_service.accept_task(open_task.task_id, "doer-1")

        with pytest.raises(InvalidStateError):
            await task_service.release_task(open_task.task_id, actor_id="poster-1")

    async def test_approve_and_auto_release_race_pays_once(
        self, task_service, ledger, make_submitted_task
    ):
        task = await make_submitted_task()

        results = await asyncio.gather(
            task_service.approve_task(task.task_id, "poster-1"),
            task_service.release_task(task.task_id),
        )

        statuses = sorted(r.status.value for r in results)
        assert statuses == ["released", "skipped"]
        assert (await ledger.get_balance("doer-1")).balance == 46_000
        assert (await ledger.get_balance("platform")).balance == 4_000


# ============================================================================
# Dispute
# ============================================================================


class TestDispute:
    async def test_dispute_locks_escrow(self, task_service, make_submitted_task):
        task = await make_submitted_task()

        dispute = await task_service.dispute_task(task.task_id, "poster-1", reason="Incomplete")

        assert dispute.raised_by == "poster-1"
        assert dispute.raised_by_role.value == "poster"
        assert (await task_service.get_task(task.task_id)).status == TaskStatus.DISPUTED
        assert (await task_service.get_escrow(task.task_id)).status == EscrowStatus.DISPUTED

        with pytest.raises(InvalidStateError, match="open dispute"):
            await task_service.approve_task(task.task_id, "poster-1")
        with pytest.raises(InvalidStateError):
            await task_service.release_task(task.task_id)

    async def test_doer_can_dispute(self, task_service, make_submitted_task):
        task = await make_submitted_task()

        dispute = await task_service.dispute_task(task.task_id, "doer-1")

        assert dispute.raised_by_role.value == "doer"

    async def test_outsider_cannot_dispute(self, task_service, make_submitted_task):
        task = await make_submitted_task()

        with pytest.raises(PermissionDeniedError):
            await task_service.dispute_task(task.task_id, "stranger")

    async def test_cannot_dispute_before_submission(self, task_service, open_task):
        with pytest.raises(InvalidStateError):
            await task_service.dispute_task(open_task.task_id, "poster-1")


# ============================================================================
# Cancel
# ============================================================================


class TestCancel:
    async def test_cancel_open_task_refunds_poster(self, task_service, ledger, open_task):
        task = await task_service.cancel_task(open_task.task_id, "poster-1")

        assert task.status == TaskStatus.CANCELLED
        assert (await task_service.get_escrow(task.task_id)).status == EscrowStatus.REFUNDED
        assert (await ledger.get_balance("poster-1")).balance == 100_000

    async def test_cancel_accepted_task(self, task_service, ledger, open_task):
        await task_service.accept_task(open_task.task_id, "doer-1")

        await task_service.cancel_task(open_task.task_id, "poster-1")

        assert (await ledger.get_balance("poster-1")).balance == 100_000
        assert (await ledger.get_balance("doer-1")).balance == 0

    async def test_cannot_cancel_after_start(self, task_service, open_task):
        await task_service.accept_task(open_task.task_id, "doer-1")
        await task_service.start_task(open_task.task_id, "doer-1")

        with pytest.raises(InvalidStateError):
            await task_service.cancel_task(open_task.task_id, "poster-1")

    async def test_only_poster_can_cancel(self, task_service, open_task):
        with pytest.raises(PermissionDeniedError):
            await task_service.cancel_task(open_task.task_id, "doer-1")


# ============================================================================
# Audit Trail & Events
# ============================================================================


class TestHistory:
    async def test_history_records_every_transition(self, task_service, make_submitted_task):
        task = await make_submitted_task()
        await task_service.approve_task(task.task_id, "poster-1")

        history = await task_service.get_task_history(task.task_id)

        assert [e.event_type for e in history] == [
            "created",
            "accepted",
            "started",
            "submitted",
            "released",
        ]
        assert history[1].metadata["fee"]["platform_fee"] == 4_000
        assert history[-1].old_status == "submitted"
        assert history[-1].new_status == "completed"

    async def test_events_published_after_commit(self, task_service, published, open_task):
        published.clear()

        await task_service.accept_task(open_task.task_id, "doer-1")

        assert [e.event_type for e in published] == ["task.accepted"]

    async def test_failed_operation_publishes_nothing(
        self, task_service, ledger, published, deadline
    ):
        published.clear()

        with pytest.raises(InsufficientFundsError):
            await task_service.create_task("broke-poster", 1_000, deadline)

        assert published == []
