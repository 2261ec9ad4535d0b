"""Task Repository Interface

Defines contract for task persistence operations. Implementations are
bound to a unit of work and never commit on their own.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from ..entities import Task, TaskStatus


class ITaskRepository(ABC):
    """
    Abstract interface for Task persistence

    Infrastructure layer provides concrete implementation (e.g., SQL).
    """

    @abstractmethod
    async def add(self, task: Task) -> None:
        """Insert a new task"""
        pass

    @abstractmethod
    async def get(self, task_id: str) -> Task | None:
        """Find task by ID"""
        pass

    @abstractmethod
    async def transition(
        self,
        task_id: str,
        expected: TaskStatus,
        new: TaskStatus,
        **fields,
    ) -> bool:
        """
        Conditionally move a task from ``expected`` to ``new``

        Extra keyword fields are written in the same statement.

        Returns:
            True if exactly this call performed the transition, False if the
            task was not in ``expected`` any more
        """
        pass

    @abstractmethod
    async def find_due_for_auto_release(self, now: datetime, limit: int = 100) -> list[Task]:
        """Submitted tasks whose review window ended at or before ``now``"""
        pass

    @abstractmethod
    async def list_tasks(
        self,
        poster_id: str | None = None,
        doer_id: str | None = None,
        status: TaskStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Task]:
        """List tasks with optional filters, newest first"""
        pass
