"""Idempotency Record Entity"""

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True)
class IdempotencyRecord:
    """
    Stored outcome of a successful mutation

    Scoped by (key, caller_id, endpoint) and written once.
    """

    key: str
    caller_id: str
    endpoint: str
    request_hash: str
    response: dict
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
