"""Tests for RateLimiter (SQL sliding window)"""

import pytest

from taskescrow.core.exceptions import RateLimitedError, ValidationError


class TestTryAcquire:
    async def test_allows_up_to_max_then_denies(self, rate_limiter):
        decisions = [
            await rate_limiter.try_acquire("user-1", "task_create", 3, 60) for _ in range(4)
        ]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]

    async def test_window_slides(self, rate_limiter, clock):
        for _ in range(2):
            await rate_limiter.try_acquire("user-1", "task_accept", 2, 60)
        assert not (await rate_limiter.try_acquire("user-1", "task_accept", 2, 60)).allowed

        clock.advance(minutes=61)

        decision = await rate_limiter.try_acquire("user-1", "task_accept", 2, 60)
        assert decision.allowed
        assert decision.remaining == 1

    async def test_partial_expiry(self, rate_limiter, clock):
        await rate_limiter.try_acquire("user-1", "op", 2, 60)
        clock.advance(minutes=30)
        await rate_limiter.try_acquire("user-1", "op", 2, 60)
        clock.advance(minutes=31)

        # first request left the window, second is still inside it
        decision = await rate_limiter.try_acquire("user-1", "op", 2, 60)
        assert decision.allowed
        assert decision.remaining == 0

    async def test_identifiers_and_operations_are_independent(self, rate_limiter):
        await rate_limiter.try_acquire("user-1", "op", 1, 60)

        assert (await rate_limiter.try_acquire("user-2", "op", 1, 60)).allowed
        assert (await rate_limiter.try_acquire("user-1", "other", 1, 60)).allowed
        assert not (await rate_limiter.try_acquire("user-1", "op", 1, 60)).allowed

    async def test_denied_requests_do_not_count(self, rate_limiter, clock):
        await rate_limiter.try_acquire("user-1", "op", 1, 10)
        for _ in range(3):
            await rate_limiter.try_acquire("user-1", "op", 1, 10)

        clock.advance(minutes=11)
        assert (await rate_limiter.try_acquire("user-1", "op", 1, 10)).allowed

    @pytest.mark.parametrize("max_requests,window", [(0, 60), (5, 0)])
    async def test_rejects_bad_limits(self, rate_limiter, max_requests, window):
        with pytest.raises(ValidationError):
            await rate_limiter.try_acquire("user-1", "op", max_requests, window)


class TestEnforce:
    async def test_configured_rule(self, rate_limiter):
        for _ in range(5):
            await rate_limiter.enforce("user-1", "task_accept")

        with pytest.raises(RateLimitedError) as exc_info:
            await rate_limiter.enforce("user-1", "task_accept")

        assert exc_info.value.max_requests == 5
        assert exc_info.value.window_minutes == 60

    async def test_unconfigured_operation_is_unlimited(self, rate_limiter):
        assert await rate_limiter.enforce("user-1", "wallet_deposit") is None
