"""
TaskEscrow FastAPI Application

REST API for the escrow-backed task marketplace.

Provides:
- Tasks: create, accept, start, submit, approve, release, dispute, cancel
- Wallet: balances, event log, sandbox deposit/withdraw, reconciliation
- Disputes: admin resolution (approve, reject, split)
- Auto-release: periodic sweep plus an internal trigger endpoint
"""

from contextlib import asynccontextmanager
from datetime import timedelta

import redis.asyncio as redis
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .infrastructure.messaging import InMemoryEventBus, RedisEventBus
from .infrastructure.persistence.redis import RedisIdempotencyStore, RedisRateLimitStore
from .infrastructure.persistence.sql import (
    SqlIdempotencyStore,
    SqlRateLimitStore,
    create_schema,
    get_engine,
    get_session_factory,
    sql_unit_of_work_factory,
)
from .logging_config import configure_logging
from .routes import (
    auto_release,
    disputes,
    fees,
    init_services,
    register_exception_handlers,
    tasks,
    wallet,
)
from .services import (
    AutoReleaseScheduler,
    DisputeService,
    IdempotencyGuard,
    LedgerService,
    RateLimiter,
    RateLimitRule,
    TaskService,
)

logger = structlog.get_logger()

# Settings
settings = get_settings()


def build_services(settings: Settings, session_factory, redis_client=None) -> AutoReleaseScheduler:
    """
    Wire stores and services and register them for the routes

    Returns:
        The auto-release scheduler (started by the caller if enabled)
    """
    uow_factory = sql_unit_of_work_factory(session_factory)
    fee_schedule = settings.fee_schedule()

    if redis_client is not None:
        event_bus = RedisEventBus(redis_client, channel_prefix=settings.event_channel_prefix)
        idempotency_store = RedisIdempotencyStore(
            redis_client, ttl_seconds=settings.idempotency_ttl_hours * 3600
        )
        rate_limit_store = RedisRateLimitStore(redis_client)
    else:
        event_bus = InMemoryEventBus()
        idempotency_store = SqlIdempotencyStore(session_factory)
        rate_limit_store = SqlRateLimitStore(session_factory)

    ledger = LedgerService(uow_factory, event_bus=event_bus)
    task_service = TaskService(
        uow_factory,
        ledger,
        fee_schedule=fee_schedule,
        event_bus=event_bus,
        review_window=timedelta(hours=settings.review_window_hours),
        platform_wallet_id=settings.platform_wallet_id,
    )
    dispute_service = DisputeService(uow_factory, ledger, task_service, event_bus=event_bus)
    guard = IdempotencyGuard(idempotency_store, require_keys=settings.require_idempotency_keys)
    rate_limiter = RateLimiter(
        rate_limit_store,
        rules={
            operation: RateLimitRule(policy.max_requests, policy.window_minutes)
            for operation, policy in settings.rate_limits.items()
        },
    )
    scheduler = AutoReleaseScheduler(
        task_service,
        interval_seconds=settings.auto_release_interval_seconds,
        batch_size=settings.auto_release_batch_size,
    )

    init_services(
        task_service=task_service,
        ledger_service=ledger,
        dispute_service=dispute_service,
        idempotency_guard=guard,
        rate_limiter=rate_limiter,
        scheduler=scheduler,
        fee_schedule=fee_schedule,
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager"""
    configure_logging(settings.log_level, settings.log_format)

    # Startup
    engine = get_engine(settings.database_url)
    if settings.auto_create_schema:
        await create_schema(engine)
    session_factory = get_session_factory(engine)

    redis_client = None
    if settings.redis_url:
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)

    scheduler = build_services(settings, session_factory, redis_client)
    if settings.auto_release_enabled:
        await scheduler.start()

    logger.info(
        "taskescrow_started",
        version=settings.service_version,
        redis=bool(redis_client),
        auto_release=settings.auto_release_enabled,
        docs=f"http://{settings.host}:{settings.port}/docs",
    )

    yield

    # Shutdown
    await scheduler.stop()
    if redis_client is not None:
        await redis_client.aclose()
    await engine.dispose()
    logger.info("taskescrow_stopped")


# Create FastAPI app
app = FastAPI(
    title="TaskEscrow",
    description="Escrow-backed task marketplace engine",
    version=settings.service_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(tasks.router)
app.include_router(wallet.router)
app.include_router(fees.router)
app.include_router(disputes.router)
app.include_router(auto_release.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check"""
    return {"status": "healthy"}


def main() -> None:
    import uvicorn

    uvicorn.run("taskescrow.api:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
