"""Redis Implementation of IIdempotencyStore

Each record is a JSON string written with SET NX and a TTL, so the first
writer wins and stale keys expire on their own.
"""

import json
from datetime import datetime

import redis.asyncio as redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError

from ....core.entities import IdempotencyRecord
from ....core.exceptions import InternalError
from ....core.interfaces import IIdempotencyStore

_KEY = "taskescrow:idempotency:{caller_id}:{endpoint}:{key}"


class RedisIdempotencyStore(IIdempotencyStore):
    """Redis-backed idempotency records"""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int = 24 * 3600):
        """
        Initialize Redis Idempotency Store

        Args:
            redis_client: Redis async client instance
            ttl_seconds: How long a key is remembered
        """
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    def _key(self, key: str, caller_id: str, endpoint: str) -> str:
        return _KEY.format(caller_id=caller_id, endpoint=endpoint, key=key)

    @staticmethod
    def _decode(raw: str | bytes) -> IdempotencyRecord:
        data = json.loads(raw)
        return IdempotencyRecord(
            key=data["key"],
            caller_id=data["caller_id"],
            endpoint=data["endpoint"],
            request_hash=data["request_hash"],
            response=data["response"],
            created_at=datetime.fromisoformat(data["created_at"]),
        )

    async def get(self, key: str, caller_id: str, endpoint: str) -> IdempotencyRecord | None:
        try:
            raw = await self.redis.get(self._key(key, caller_id, endpoint))
        except RedisError as e:
            raise InternalError("Idempotency lookup failed") from e
        return self._decode(raw) if raw else None

    async def put_if_absent(self, record: IdempotencyRecord) -> IdempotencyRecord | None:
        payload = json.dumps(
            {
                "key": record.key,
                "caller_id": record.caller_id,
                "endpoint": record.endpoint,
                "request_hash": record.request_hash,
                "response": record.response,
                "created_at": record.created_at.isoformat(),
            }
        )
        redis_key = self._key(record.key, record.caller_id, record.endpoint)
        try:
            stored = await self.redis.set(redis_key, payload, nx=True, ex=self.ttl_seconds)
            if stored:
                return None
            raw = await self.redis.get(redis_key)
        except RedisError as e:
            raise InternalError("Idempotency write failed") from e
        if not raw:
            raise InternalError("Idempotency record vanished after conflict")
        return self._decode(raw)
