"""Tests for LedgerService

Balance changes, the append-only event log and reconciliation.
"""

import asyncio

import pytest

from taskescrow.core.entities import WalletEventType, fold_events
from taskescrow.core.exceptions import InsufficientFundsError, ValidationError


class TestSandboxFunds:
    async def test_deposit_creates_wallet(self, ledger):
        entry = await ledger.deposit("user-1", 25_000)

        assert entry.balance_before == 0
        assert entry.balance_after == 25_000
        assert entry.event.event_type == WalletEventType.DEPOSIT
        assert entry.event.sequence is not None
        assert (await ledger.get_balance("user-1")).balance == 25_000

    async def test_withdraw(self, ledger):
        await ledger.deposit("user-1", 25_000)

        entry = await ledger.withdraw("user-1", 10_000)

        assert entry.event.amount == -10_000
        assert entry.balance_after == 15_000

    async def test_overdraw_is_rejected(self, ledger):
        await ledger.deposit("user-1", 1_000)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await ledger.withdraw("user-1", 1_001)

        assert exc_info.value.balance == 1_000
        assert exc_info.value.amount == 1_001
        assert (await ledger.get_balance("user-1")).balance == 1_000
        assert len(await ledger.list_events("user-1")) == 1

    @pytest.mark.parametrize("amount", [0, -5, 1.5])
    async def test_rejects_bad_amount(self, ledger, amount):
        with pytest.raises(ValidationError):
            await ledger.deposit("user-1", amount)

    async def test_unknown_user_has_empty_wallet(self, ledger):
        wallet = await ledger.get_balance("nobody")

        assert wallet.balance == 0
        assert wallet.tasks_completed == 0

    async def test_concurrent_withdrawals_never_overdraw(self, ledger):
        await ledger.deposit("user-1", 3_000)

        results = await asyncio.gather(
            *(ledger.withdraw("user-1", 1_000) for _ in range(5)),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, Exception)]
        assert len(succeeded) == 3
        assert all(isinstance(e, InsufficientFundsError) for e in failed)
        assert (await ledger.get_balance("user-1")).balance == 0


class TestEventLog:
    async def test_events_fold_to_balance(self, ledger):
        await ledger.deposit("user-1", 10_000)
        await ledger.withdraw("user-1", 2_500)
        await ledger.deposit("user-1", 700)

        events = await ledger.list_events("user-1", newest_first=False)

        assert [e.amount for e in events] == [10_000, -2_500, 700]
        assert fold_events(events) == (await ledger.get_balance("user-1")).balance

    async def test_newest_first_by_default(self, ledger):
        await ledger.deposit("user-1", 1)
        await ledger.deposit("user-1", 2)

        events = await ledger.list_events("user-1")

        assert [e.amount for e in events] == [2, 1]

    async def test_pagination(self, ledger):
        for amount in range(1, 6):
            await ledger.deposit("user-1", amount)

        page = await ledger.list_events("user-1", limit=2, offset=1)

        assert [e.amount for e in page] == [4, 3]

    async def test_publishes_wallet_events(self, ledger, published):
        await ledger.deposit("user-1", 500)

        assert [e.event_type for e in published] == ["wallet.credited"]
        assert published[0].payload["amount"] == 500


class TestReconcile:
    async def test_consistent_after_full_lifecycle(
        self, ledger, task_service, make_submitted_task
    ):
        task = await make_submitted_task()
        await task_service.approve_task(task.task_id, "poster-1")

        for user_id in ("poster-1", "doer-1", "platform"):
            report = await ledger.reconcile(user_id)
            assert report.consistent, report.to_dict()

        poster = await ledger.reconcile("poster-1")
        assert poster.stored_balance == 0
        assert poster.event_count == 2

    async def test_empty_wallet_is_consistent(self, ledger):
        report = await ledger.reconcile("nobody")

        assert report.consistent
        assert report.stored_balance == 0
        assert report.folded_balance == 0
        assert report.event_count == 0
