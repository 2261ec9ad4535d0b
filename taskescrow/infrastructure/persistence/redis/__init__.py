"""Redis-backed guard stores"""

from .idempotency_store import RedisIdempotencyStore
from .rate_limit_store import RedisRateLimitStore

__all__ = ["RedisIdempotencyStore", "RedisRateLimitStore"]
