"""Task Domain Entity

Pure business logic for Task, independent of infrastructure.
The transition table below is the single source of truth for the
task lifecycle.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from ..exceptions import InvalidStateError


class TaskStatus(str, Enum):
    """Task status"""

    OPEN = "open"  # Funded, waiting for a doer
    ACCEPTED = "accepted"  # Doer assigned, fee locked
    IN_PROGRESS = "in_progress"  # Doer is working on it
    SUBMITTED = "submitted"  # Work delivered, review window running
    APPROVED = "approved"  # Reserved intermediate, not used by the release path
    DISPUTED = "disputed"  # Escrow locked until an admin resolves it
    COMPLETED = "completed"  # Funds distributed
    CANCELLED = "cancelled"  # Funds returned to the poster


TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.OPEN: frozenset({TaskStatus.ACCEPTED, TaskStatus.CANCELLED}),
    TaskStatus.ACCEPTED: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.SUBMITTED}),
    TaskStatus.SUBMITTED: frozenset(
        {TaskStatus.APPROVED, TaskStatus.DISPUTED, TaskStatus.COMPLETED}
    ),
    TaskStatus.APPROVED: frozenset({TaskStatus.COMPLETED}),
    TaskStatus.DISPUTED: frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TASK_TRANSITIONS.items() if not targets)


def can_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """Check whether the transition table allows from_status -> to_status"""
    return to_status in TASK_TRANSITIONS.get(from_status, frozenset())


def ensure_transition(from_status: TaskStatus, to_status: TaskStatus) -> None:
    """
    Validate a transition against the table

    Raises:
        InvalidStateError: If the pair is not in the table
    """
    if not can_transition(from_status, to_status):
        raise InvalidStateError(from_status.value, to_status.value)


@dataclass
class Task:
    """
    Task Domain Entity

    A unit of work funded by a poster. reward_amount is the gross escrowed
    amount in minor currency units and never changes after creation.
    """

    task_id: str
    poster_id: str
    reward_amount: int
    deadline: datetime

    title: str = ""
    description: str = ""

    status: TaskStatus = TaskStatus.OPEN
    doer_id: str | None = None

    # Review window deadline, set on submission
    auto_release_at: datetime | None = None

    # Timestamps
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    accepted_at: datetime | None = None
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    def __post_init__(self):
        """Validate invariants"""
        if not self.task_id:
            raise ValueError("task_id cannot be empty")
        if not self.poster_id:
            raise ValueError("poster_id cannot be empty")
        if isinstance(self.reward_amount, bool) or not isinstance(self.reward_amount, int):
            raise ValueError("reward_amount must be an integer")
        if self.reward_amount <= 0:
            raise ValueError("reward_amount must be positive")
        if self.status not in (TaskStatus.OPEN, TaskStatus.CANCELLED) and not self.doer_id:
            raise ValueError(f"doer_id is required once a task is {self.status.value}")

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_due_for_auto_release(self, now: datetime) -> bool:
        return (
            self.status == TaskStatus.SUBMITTED
            and self.auto_release_at is not None
            and self.auto_release_at <= now
        )

    def to_dict(self) -> dict:
        """Convert to dictionary"""

        def iso(dt: datetime | None) -> str | None:
            return dt.isoformat() if dt else None

        return {
            "task_id": self.task_id,
            "poster_id": self.poster_id,
            "doer_id": self.doer_id,
            "title": self.title,
            "description": self.description,
            "reward_amount": self.reward_amount,
            "status": self.status.value,
            "deadline": iso(self.deadline),
            "auto_release_at": iso(self.auto_release_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "accepted_at": iso(self.accepted_at),
            "started_at": iso(self.started_at),
            "submitted_at": iso(self.submitted_at),
            "completed_at": iso(self.completed_at),
            "cancelled_at": iso(self.cancelled_at),
        }
