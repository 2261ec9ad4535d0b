"""Rate Limit Store Interface"""

from abc import ABC, abstractmethod
from datetime import datetime


class IRateLimitStore(ABC):
    """Sliding-window request log"""

    @abstractmethod
    async def acquire(
        self,
        identifier: str,
        operation: str,
        max_requests: int,
        window_start: datetime,
        now: datetime,
    ) -> int | None:
        """
        Count requests at or after ``window_start`` and record one more if
        the count is below ``max_requests``

        Returns:
            The count before this request if it was recorded, None if denied
        """
        pass
