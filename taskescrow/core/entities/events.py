"""Event Entities

TaskEvent is the persisted audit trail of a task.
DomainEvent is what gets published to subscribers after a commit.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4


@dataclass
class TaskEvent:
    """Audit row written in the same transaction as a task transition"""

    event_id: str
    task_id: str
    event_type: str
    actor_id: str | None = None
    actor_role: str | None = None
    old_status: str | None = None
    new_status: str | None = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "task_id": self.task_id,
            "event_type": self.event_type,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class DomainEvent:
    """Notification fanned out after a transaction commits"""

    event_type: str  # e.g. "task.accepted", "wallet.credited"
    payload: dict
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }
