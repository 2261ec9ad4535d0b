"""SQL persistence (PostgreSQL via asyncpg, SQLite via aiosqlite)"""

from .database import create_schema, get_engine, get_session_factory
from .idempotency_store import SqlIdempotencyStore
from .models import Base
from .rate_limit_store import SqlRateLimitStore
from .unit_of_work import SqlUnitOfWork, sql_unit_of_work_factory

__all__ = [
    "Base",
    "get_engine",
    "get_session_factory",
    "create_schema",
    "SqlUnitOfWork",
    "sql_unit_of_work_factory",
    "SqlIdempotencyStore",
    "SqlRateLimitStore",
]
