"""Redis Implementation of IRateLimitStore

A sorted set per (identifier, operation) holds one member per accepted
request, scored by its timestamp in milliseconds. Pruning, counting and
recording happen inside one Lua script.
"""

import math
from datetime import datetime
from typing import Any
from uuid import uuid4

import redis.asyncio as redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError

from ....core.exceptions import InternalError
from ....core.interfaces import IRateLimitStore

# ============================================================================
# Lua Scripts for Atomic Operations
# ============================================================================

# Returns the count before this request, or -1 when the window is full
LUA_SLIDING_WINDOW = """
local key = KEYS[1]
local window_start = tonumber(ARGV[1])
local now = tonumber(ARGV[2])
local max_requests = tonumber(ARGV[3])
local member = ARGV[4]
local ttl = tonumber(ARGV[5])

redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. window_start)
local count = redis.call('ZCARD', key)
if count >= max_requests then
    return -1
end

redis.call('ZADD', key, now, member)
redis.call('EXPIRE', key, ttl)
return count
"""


def _ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


class RedisRateLimitStore(IRateLimitStore):
    """Redis-backed sliding-window counter"""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client
        self._script: Any | None = None

    def _get_script(self) -> Any:
        if self._script is None:
            self._script = self.redis.register_script(LUA_SLIDING_WINDOW)
        return self._script

    async def acquire(
        self,
        identifier: str,
        operation: str,
        max_requests: int,
        window_start: datetime,
        now: datetime,
    ) -> int | None:
        script = self._get_script()
        ttl = max(1, math.ceil((now - window_start).total_seconds()))
        try:
            result = await script(
                keys=[f"taskescrow:ratelimit:{operation}:{identifier}"],
                args=[_ms(window_start), _ms(now), max_requests, str(uuid4()), ttl],
            )
        except RedisError as e:
            raise InternalError("Rate limit check failed") from e
        count = int(result)
        return None if count < 0 else count
