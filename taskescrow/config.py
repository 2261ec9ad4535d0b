"""
TaskEscrow Configuration

Settings for the TaskEscrow service
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.fees import (
    DEFAULT_TASK_TIERS,
    DEFAULT_VALUE_TIERS,
    FeeSchedule,
    TaskTier,
    ValueTier,
)


class TaskTierSetting(BaseModel):
    below: int | None = None
    percent: Decimal


class ValueTierSetting(BaseModel):
    min_amount: int
    percent: Decimal


class RateLimitPolicy(BaseModel):
    max_requests: int = Field(..., ge=1)
    window_minutes: int = Field(..., ge=1)


class Settings(BaseSettings):
    """TaskEscrow Settings"""

    # Service
    service_name: str = "TaskEscrow"
    service_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8000

    # Transactional store (postgresql+asyncpg://... in production)
    database_url: str = "sqlite+aiosqlite:///./taskescrow.db"
    auto_create_schema: bool = True  # Alembic owns the schema when False

    # Redis (optional: idempotency keys, rate limits and event fan-out)
    redis_url: str | None = None
    event_channel_prefix: str = "taskescrow:events"

    # Escrow lifecycle
    review_window_hours: int = 24
    platform_wallet_id: str = "platform"

    # Auto-release scheduler
    auto_release_enabled: bool = True
    auto_release_interval_seconds: int = 300
    auto_release_batch_size: int = 100

    # Guards
    require_idempotency_keys: bool = False
    idempotency_ttl_hours: int = 24
    rate_limits: dict[str, RateLimitPolicy] = {
        "task_create": RateLimitPolicy(max_requests=10, window_minutes=60),
        "task_accept": RateLimitPolicy(max_requests=5, window_minutes=60),
        "wallet_withdraw": RateLimitPolicy(max_requests=5, window_minutes=60),
    }

    # Fees
    task_fee_tiers: list[TaskTierSetting] = [
        TaskTierSetting(below=t.below, percent=t.percent) for t in DEFAULT_TASK_TIERS
    ]
    value_fee_tiers: list[ValueTierSetting] = [
        ValueTierSetting(min_amount=t.min_amount, percent=t.percent) for t in DEFAULT_VALUE_TIERS
    ]

    # Internal callers (scheduler trigger)
    internal_token: str | None = None

    # CORS
    cors_origins: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def fee_schedule(self) -> FeeSchedule:
        """Build the validated fee schedule from the configured tiers"""
        return FeeSchedule(
            task_tiers=[TaskTier(below=t.below, percent=t.percent) for t in self.task_fee_tiers],
            value_tiers=[
                ValueTier(min_amount=t.min_amount, percent=t.percent)
                for t in self.value_fee_tiers
            ],
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
