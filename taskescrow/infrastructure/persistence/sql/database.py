"""Async engine and session factory.

Usage:
    from .database import get_engine, get_session_factory

    engine = get_engine(database_url)
    async_session = get_session_factory(engine)

    async with async_session() as session:
        ...
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models import Base


def normalize_database_url(database_url: str) -> str:
    """Map postgres:// and postgresql:// URLs onto the asyncpg driver"""
    url = database_url
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://") and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    # pysqlite defers BEGIN until the first write. Emitting BEGIN IMMEDIATE
    # ourselves takes the write lock up front so conditional updates see
    # the committed state of any concurrent transaction.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Accepts postgres://, postgresql+asyncpg:// and sqlite+aiosqlite:// URLs.
    """
    url = normalize_database_url(database_url)

    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo)
        _serialize_sqlite_writers(engine)
        return engine

    return create_async_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=echo,
    )


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to the given engine."""
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet (local and test databases)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
