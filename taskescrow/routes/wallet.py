"""Wallet API Routes

Balances, the append-only event log, and sandbox funding.
"""

import structlog
from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from ..auth import PrincipalDep
from .dependencies import (
    IdempotencyGuardDep,
    IdempotencyKeyHeader,
    LedgerServiceDep,
    RateLimiterDep,
)

router = APIRouter(prefix="/api/v1/wallet", tags=["wallet"])
logger = structlog.get_logger()


class AmountRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Amount in minor currency units")


class WalletResponse(BaseModel):
    user_id: str
    balance: int
    total_earnings: int
    tasks_completed: int
    updated_at: str


class WalletEventResponse(BaseModel):
    event_id: str
    user_id: str
    event_type: str
    amount: int
    balance_before: int
    balance_after: int
    task_id: str | None = None
    escrow_id: str | None = None
    actor_id: str | None = None
    metadata: dict = Field(default_factory=dict)
    created_at: str


class LedgerEntryResponse(BaseModel):
    balance_before: int
    balance_after: int
    event: WalletEventResponse


class ReconciliationResponse(BaseModel):
    user_id: str
    stored_balance: int
    folded_balance: int | None = None
    event_count: int
    consistent: bool
    error: str | None = None


@router.get("", response_model=WalletResponse)
async def get_wallet(principal: PrincipalDep, ledger: LedgerServiceDep):
    """Caller's balance"""
    wallet = await ledger.get_balance(principal.user_id)
    return wallet.to_dict()


@router.get("/events", response_model=list[WalletEventResponse])
async def list_wallet_events(
    principal: PrincipalDep,
    ledger: LedgerServiceDep,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Caller's wallet events, newest first"""
    events = await ledger.list_events(principal.user_id, limit=limit, offset=offset)
    return [e.to_dict() for e in events]


@router.get("/reconcile", response_model=ReconciliationResponse)
async def reconcile_wallet(principal: PrincipalDep, ledger: LedgerServiceDep):
    """Replay the caller's event log against the stored balance"""
    report = await ledger.reconcile(principal.user_id)
    return report.to_dict()


@router.post("/deposit", response_model=LedgerEntryResponse)
async def deposit(
    request: AmountRequest,
    principal: PrincipalDep,
    guard: IdempotencyGuardDep,
    ledger: LedgerServiceDep,
    idempotency_key: IdempotencyKeyHeader = None,
):
    """Add sandbox funds to the caller's wallet"""

    async def operation() -> dict:
        entry = await ledger.deposit(principal.user_id, request.amount)
        return entry.to_dict()

    return await guard.execute(
        idempotency_key,
        principal.user_id,
        "wallet.deposit",
        request.model_dump(mode="json"),
        operation,
    )


@router.post("/withdraw", response_model=LedgerEntryResponse)
async def withdraw(
    request: AmountRequest,
    principal: PrincipalDep,
    guard: IdempotencyGuardDep,
    rate_limiter: RateLimiterDep,
    ledger: LedgerServiceDep,
    idempotency_key: IdempotencyKeyHeader = None,
):
    """
    Withdraw sandbox funds

    Rate limited (wallet_withdraw).
    """

    async def operation() -> dict:
        await rate_limiter.enforce(principal.user_id, "wallet_withdraw")
        entry = await ledger.withdraw(principal.user_id, request.amount)
        return entry.to_dict()

    return await guard.execute(
        idempotency_key,
        principal.user_id,
        "wallet.withdraw",
        request.model_dump(mode="json"),
        operation,
    )
