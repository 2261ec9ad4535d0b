"""Task Event Repository Interface"""

from abc import ABC, abstractmethod

from ..entities import TaskEvent


class ITaskEventRepository(ABC):
    """Append-only audit trail of task transitions"""

    @abstractmethod
    async def append(self, event: TaskEvent) -> None:
        pass

    @abstractmethod
    async def list_for_task(self, task_id: str) -> list[TaskEvent]:
        pass
