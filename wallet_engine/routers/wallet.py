"""
Wallet router — the member's own wallet.

Every endpoint resolves the wallet from the bearer token
(get_current_wallet), so members can only see and spend their own money.

Endpoints:
  GET  /wallet                   — Wallet details
  GET  /wallet/balance           — Current balance
  POST /wallet/purchases         — Buy airtime, data, electricity or goods
  GET  /wallet/spending-limit    — Today's ceiling and the tier behind it
  GET  /wallet/daily-usage       — Spend recorded for a date (default today)
  GET  /wallet/spending-summary  — Limit, spend and headroom together
  GET  /wallet/audit-log         — The wallet's audit trail
  GET  /wallet/locks             — Dedup locks from the last 24 hours

Purchase outcomes:
  200  success
  409  duplicate — the same purchase is already being processed
  422  limit_exceeded or insufficient_funds (distinct error_type values)
  503  transient fault, safe to retry
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine.database import get_db
from wallet_engine.dependencies import get_current_wallet
from wallet_engine.models.wallet_account import WalletAccount
from wallet_engine.routers.responses import operation_response
from wallet_engine.schemas.wallet import (
    AuditEntryResponse,
    BalanceResponse,
    DailyUsageResponse,
    OperationResponse,
    PurchaseRequest,
    SpendingLimitResponse,
    SpendingSummaryResponse,
    TransactionLockResponse,
    WalletResponse,
)
from wallet_engine.services import audit_service, lock_service, wallet_service

router = APIRouter()


@router.get(
    "",
    response_model=WalletResponse,
    summary="Get my wallet",
)
async def get_wallet(
    wallet: WalletAccount = Depends(get_current_wallet),
):
    return wallet


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Get my balance",
)
async def get_balance(
    wallet: WalletAccount = Depends(get_current_wallet),
    db: AsyncSession = Depends(get_db),
):
    balance = await wallet_service.get_balance(db, wallet.id)
    return BalanceResponse(wallet_id=wallet.id, balance_kobo=balance)


@router.post(
    "/purchases",
    response_model=OperationResponse,
    summary="Make a purchase from the wallet",
    responses={
        409: {"description": "Duplicate purchase already in progress"},
        422: {"description": "Daily limit exceeded or insufficient funds"},
        503: {"description": "Transient failure, retry"},
    },
)
async def create_purchase(
    request: PurchaseRequest,
    wallet: WalletAccount = Depends(get_current_wallet),
    db: AsyncSession = Depends(get_db),
):
    """
    Debit the wallet for a purchase.

    The `details.category` field selects the payload shape: airtime, data,
    electricity or goods. Submitting the same purchase twice within a minute
    is rejected as a duplicate while the first is in flight.
    """
    result = await wallet_service.purchase(
        db,
        account_id=wallet.id,
        amount_kobo=request.amount_kobo,
        details=request.details,
        external_reference=request.external_reference,
    )
    return operation_response(result)


@router.get(
    "/spending-limit",
    response_model=SpendingLimitResponse,
    summary="Get my daily spending limit",
)
async def get_spending_limit(
    wallet: WalletAccount = Depends(get_current_wallet),
    db: AsyncSession = Depends(get_db),
):
    limit = await wallet_service.get_spending_limit(db, wallet.id)
    return SpendingLimitResponse(
        daily_limit_kobo=limit.daily_limit,
        tier_name=limit.tier_name,
        account_age_days=limit.account_age_days,
    )


@router.get(
    "/daily-usage",
    response_model=DailyUsageResponse,
    summary="Get my spend for a date",
)
async def get_daily_usage(
    on_date: date | None = Query(None, alias="date", description="UTC date, defaults to today"),
    wallet: WalletAccount = Depends(get_current_wallet),
    db: AsyncSession = Depends(get_db),
):
    usage = await wallet_service.get_daily_usage(db, wallet.id, on_date)
    return DailyUsageResponse(
        usage_date=usage.usage_date,
        total_spent_kobo=usage.total_spent,
        transaction_count=usage.transaction_count,
    )


@router.get(
    "/spending-summary",
    response_model=SpendingSummaryResponse,
    summary="Get my limit, spend and headroom for today",
)
async def get_spending_summary(
    wallet: WalletAccount = Depends(get_current_wallet),
    db: AsyncSession = Depends(get_db),
):
    summary = await wallet_service.get_spending_summary(db, wallet.id)
    return SpendingSummaryResponse(
        tier_name=summary["tier_name"],
        account_age_days=summary["account_age_days"],
        daily_limit_kobo=summary["daily_limit"],
        spent_today_kobo=summary["spent_today"],
        transaction_count=summary["transaction_count"],
        remaining_kobo=summary["remaining"],
        percentage_used=summary["percentage_used"],
    )


@router.get(
    "/audit-log",
    response_model=list[AuditEntryResponse],
    summary="List my audit trail",
)
async def list_audit_log(
    status: str | None = Query(None, description="success or failed"),
    operation_type: str | None = Query(None, description="e.g. airtime, deposit, refund"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    wallet: WalletAccount = Depends(get_current_wallet),
    db: AsyncSession = Depends(get_db),
):
    return await audit_service.list_entries(
        db,
        account_id=wallet.id,
        status=status,
        operation_type=operation_type,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/locks",
    response_model=list[TransactionLockResponse],
    summary="List my recent transaction locks",
)
async def list_locks(
    wallet: WalletAccount = Depends(get_current_wallet),
    db: AsyncSession = Depends(get_db),
):
    return await lock_service.list_recent_locks(db, wallet.id)
