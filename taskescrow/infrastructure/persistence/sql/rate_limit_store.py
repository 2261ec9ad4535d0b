"""SQL Implementation of IRateLimitStore

One row per accepted request. Rows older than the window are pruned for
the (identifier, operation) pair on every call; rows are never updated.
"""

from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ....core.exceptions import InternalError
from ....core.interfaces import IRateLimitStore
from .models import RateLimitModel


class SqlRateLimitStore(IRateLimitStore):
    """SQL-backed sliding-window counter"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def acquire(
        self,
        identifier: str,
        operation: str,
        max_requests: int,
        window_start: datetime,
        now: datetime,
    ) -> int | None:
        scope = (
            RateLimitModel.identifier == identifier,
            RateLimitModel.operation == operation,
        )
        try:
            async with self._session_factory() as session, session.begin():
                await session.execute(
                    delete(RateLimitModel)
                    .where(*scope, RateLimitModel.window_start < window_start)
                    .execution_options(synchronize_session=False)
                )
                count = await session.scalar(
                    select(func.count())
                    .select_from(RateLimitModel)
                    .where(*scope, RateLimitModel.window_start >= window_start)
                )
                if count >= max_requests:
                    return None
                session.add(
                    RateLimitModel(identifier=identifier, operation=operation, window_start=now)
                )
                return count
        except SQLAlchemyError as e:
            raise InternalError("Rate limit check failed") from e
