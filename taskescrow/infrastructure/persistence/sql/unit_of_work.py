"""SQL Unit of Work

One AsyncSession, one transaction. Commits on clean exit, rolls back on
any exception. Storage failures surface as InternalError so callers only
ever see the domain exception taxonomy.
"""

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ....core.exceptions import InternalError
from ....core.interfaces import IUnitOfWork
from .dispute_repository import SqlDisputeRepository
from .escrow_repository import SqlEscrowRepository
from .task_repository import SqlTaskEventRepository, SqlTaskRepository
from .wallet_repository import SqlWalletRepository

logger = structlog.get_logger()


class SqlUnitOfWork(IUnitOfWork):
    """
    Unit of work over a SQLAlchemy async session

    Usage:
        uow_factory = lambda: SqlUnitOfWork(session_factory)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__()
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    async def __aenter__(self) -> "SqlUnitOfWork":
        self._session = self._session_factory()
        self.tasks = SqlTaskRepository(self._session)
        self.escrows = SqlEscrowRepository(self._session)
        self.wallets = SqlWalletRepository(self._session)
        self.disputes = SqlDisputeRepository(self._session)
        self.task_events = SqlTaskEventRepository(self._session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        session = self._session
        try:
            if exc_type is None:
                try:
                    await session.commit()
                except SQLAlchemyError as e:
                    await session.rollback()
                    self.pending_events.clear()
                    logger.error("transaction_commit_failed", error=str(e))
                    raise InternalError("Transaction commit failed") from e
            else:
                await session.rollback()
                self.pending_events.clear()
                if isinstance(exc, SQLAlchemyError):
                    logger.error("transaction_failed", error=str(exc))
                    raise InternalError("Storage operation failed") from exc
        finally:
            await session.close()
            self._session = None
        return False


def sql_unit_of_work_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Build a zero-argument factory suitable for the services"""

    def factory() -> SqlUnitOfWork:
        return SqlUnitOfWork(session_factory)

    return factory
