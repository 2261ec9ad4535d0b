"""Rate Limiter

Sliding-window limit per (identifier, operation). Only accepted requests
are recorded. Under concurrency the limit is soft: callers racing at the
edge of the window may overshoot by a small amount.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from ..core.exceptions import RateLimitedError, ValidationError
from ..core.interfaces import IRateLimitStore
from .publishing import Clock, utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_minutes: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int


class RateLimiter:
    """Sliding-window rate limiter backed by an IRateLimitStore"""

    def __init__(
        self,
        store: IRateLimitStore,
        rules: Mapping[str, RateLimitRule] | None = None,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._rules = dict(rules or {})
        self._clock = clock

    async def try_acquire(
        self,
        identifier: str,
        operation: str,
        max_requests: int,
        window_minutes: int,
        now: datetime | None = None,
    ) -> RateLimitDecision:
        """
        Count the caller's requests in the window and record this one if
        there is room

        Returns:
            RateLimitDecision; ``remaining`` is max_requests - count - 1 on
            allow and 0 on deny
        """
        if max_requests <= 0 or window_minutes <= 0:
            raise ValidationError("max_requests and window_minutes must be positive")

        now = now or self._clock()
        window_start = now - timedelta(minutes=window_minutes)
        count = await self._store.acquire(identifier, operation, max_requests, window_start, now)
        if count is None:
            logger.warning(
                "rate_limited",
                identifier=identifier,
                operation=operation,
                max_requests=max_requests,
                window_minutes=window_minutes,
            )
            return RateLimitDecision(allowed=False, remaining=0)
        return RateLimitDecision(allowed=True, remaining=max(0, max_requests - count - 1))

    async def enforce(self, identifier: str, operation: str) -> RateLimitDecision | None:
        """
        Apply the configured rule for ``operation``

        Returns:
            The decision, or None if the operation has no rule

        Raises:
            RateLimitedError: The caller is over the limit
        """
        rule = self._rules.get(operation)
        if rule is None:
            return None
        decision = await self.try_acquire(
            identifier, operation, rule.max_requests, rule.window_minutes
        )
        if not decision.allowed:
            raise RateLimitedError(operation, rule.max_requests, rule.window_minutes)
        return decision
