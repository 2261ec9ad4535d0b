"""Pytest Configuration and Fixtures

Shared fixtures for all tests. Services run against a file-backed SQLite
database (aiosqlite) so unit-of-work, conditional update and ledger
behaviour are exercised for real.
"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest

from taskescrow.core.entities import DomainEvent, Task
from taskescrow.infrastructure.messaging import InMemoryEventBus
from taskescrow.infrastructure.persistence.sql import (
    SqlIdempotencyStore,
    SqlRateLimitStore,
    create_schema,
    get_engine,
    get_session_factory,
    sql_unit_of_work_factory,
)
from taskescrow.services import (
    AutoReleaseScheduler,
    DisputeService,
    IdempotencyGuard,
    LedgerService,
    RateLimiter,
    RateLimitRule,
    TaskService,
)

START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Controllable UTC clock"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator:
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskescrow.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def uow_factory(session_factory):
    return sql_unit_of_work_factory(session_factory)


@pytest.fixture
def published() -> list[DomainEvent]:
    return []


@pytest.fixture
def event_bus(published) -> InMemoryEventBus:
    bus = InMemoryEventBus()

    async def capture(event: DomainEvent) -> None:
        published.append(event)

    bus.subscribe(capture)
    return bus


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def ledger(uow_factory, event_bus, clock) -> LedgerService:
    return LedgerService(uow_factory, event_bus=event_bus, clock=clock)


@pytest.fixture
def task_service(uow_factory, ledger, event_bus, clock) -> TaskService:
    return TaskService(
        uow_factory,
        ledger,
        event_bus=event_bus,
        review_window=timedelta(hours=24),
        platform_wallet_id="platform",
        clock=clock,
    )


@pytest.fixture
def dispute_service(uow_factory, ledger, task_service, event_bus, clock) -> DisputeService:
    return DisputeService(uow_factory, ledger, task_service, event_bus=event_bus, clock=clock)


@pytest.fixture
def scheduler(task_service, clock) -> AutoReleaseScheduler:
    return AutoReleaseScheduler(task_service, interval_seconds=300, batch_size=100, clock=clock)


@pytest.fixture
def idempotency_guard(session_factory, clock) -> IdempotencyGuard:
    return IdempotencyGuard(SqlIdempotencyStore(session_factory), clock=clock)


@pytest.fixture
def rate_limiter(session_factory, clock) -> RateLimiter:
    return RateLimiter(
        SqlRateLimitStore(session_factory),
        rules={
            "task_create": RateLimitRule(max_requests=10, window_minutes=60),
            "task_accept": RateLimitRule(max_requests=5, window_minutes=60),
            "wallet_withdraw": RateLimitRule(max_requests=5, window_minutes=60),
        },
        clock=clock,
    )


# =============================================================================
# Scenario helpers
# =============================================================================


@pytest.fixture
def make_submitted_task(task_service, ledger, clock):
    """Fund the poster, then drive a task to submitted"""

    async def _make(
        reward: int = 50_000,
        poster: str = "poster-1",
        doer: str = "doer-1",
    ) -> Task:
        await ledger.deposit(poster, reward)
        task = await task_service.create_task(poster, reward, clock.now + timedelta(days=7))
        await task_service.accept_task(task.task_id, doer)
        await task_service.start_task(task.task_id, doer)
        return await task_service.submit_task(task.task_id, doer)

    return _make
