"""Idempotency Guard

Replays the stored response of a mutation when the same caller retries
it with the same key and body. Keys are scoped per (caller, endpoint).
A response is stored only after the operation succeeded, so failures
never poison a key.

Concurrent first attempts with one key are not serialized here; each
mutation's conditional state update decides which of them takes effect.
"""

import hashlib
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from ..core.entities import IdempotencyRecord
from ..core.exceptions import ConflictError, IdempotencyKeyRequiredError, ValidationError
from ..core.interfaces import IIdempotencyStore
from .publishing import Clock, utcnow

logger = structlog.get_logger()

MAX_KEY_LENGTH = 255


def canonical_json(value) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def request_hash(body) -> str:
    """SHA-256 over the canonical JSON form of a request body"""
    return hashlib.sha256(canonical_json(body).encode("utf-8")).hexdigest()


def normalize_response(response: dict) -> dict:
    """The exact JSON-compatible form that is stored and replayed"""
    return json.loads(canonical_json(response))


@dataclass(frozen=True)
class Admission:
    fresh: bool
    prior_response: dict | None = None


class IdempotencyGuard:
    """Idempotency key handling for mutating endpoints"""

    def __init__(
        self,
        store: IIdempotencyStore,
        require_keys: bool = False,
        clock: Clock = utcnow,
    ):
        """
        Initialize Idempotency Guard

        Args:
            store: Record storage (SQL or Redis)
            require_keys: Reject financial mutations that carry no key
            clock: Source of the current UTC time
        """
        self._store = store
        self._require_keys = require_keys
        self._clock = clock

    @staticmethod
    def _check_key(key: str) -> None:
        if not key or len(key) > MAX_KEY_LENGTH:
            raise ValidationError(f"Idempotency key must be 1-{MAX_KEY_LENGTH} characters")

    async def admit(self, key: str, caller_id: str, endpoint: str, body) -> Admission:
        """
        Check a key before running the operation

        Raises:
            ConflictError: Key already used by this caller on this endpoint
                with a different body
        """
        self._check_key(key)
        record = await self._store.get(key, caller_id, endpoint)
        if record is None:
            return Admission(fresh=True)
        if record.request_hash != request_hash(body):
            logger.warning(
                "idempotency_conflict",
                caller_id=caller_id,
                endpoint=endpoint,
                key=key,
            )
            raise ConflictError(
                f"Idempotency key {key!r} was already used with a different request"
            )
        return Admission(fresh=False, prior_response=record.response)

    async def record(self, key: str, caller_id: str, endpoint: str, body, response: dict) -> dict:
        """Store the response of a successful operation and return its stored form"""
        self._check_key(key)
        stored_response = normalize_response(response)
        existing = await self._store.put_if_absent(
            IdempotencyRecord(
                key=key,
                caller_id=caller_id,
                endpoint=endpoint,
                request_hash=request_hash(body),
                response=stored_response,
                created_at=self._clock(),
            )
        )
        if existing is not None:
            # A concurrent attempt with the same key finished first; its record stands
            logger.warning(
                "idempotency_record_exists",
                caller_id=caller_id,
                endpoint=endpoint,
                key=key,
                same_request=existing.request_hash == request_hash(body),
            )
        return stored_response

    async def execute(
        self,
        key: str | None,
        caller_id: str,
        endpoint: str,
        body,
        operation: Callable[[], Awaitable[dict]],
    ) -> dict:
        """
        Run ``operation`` at most once per (key, caller, endpoint)

        Returns:
            The operation's response, or the stored response on a replay
        """
        if not key:
            if self._require_keys:
                raise IdempotencyKeyRequiredError(
                    f"An idempotency key is required for {endpoint}"
                )
            return normalize_response(await operation())

        admission = await self.admit(key, caller_id, endpoint, body)
        if not admission.fresh:
            logger.info("idempotent_replay", caller_id=caller_id, endpoint=endpoint, key=key)
            return admission.prior_response

        response = await operation()
        return await self.record(key, caller_id, endpoint, body, response)
