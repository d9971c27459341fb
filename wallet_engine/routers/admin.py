"""
Admin router — oversight of every wallet and the spending limit tiers.

All endpoints require the ADMIN role. Admins read organisation-wide data and
change tier limits; they never move money.

Endpoints:
  GET  /admin/spending-limits              — List tiers
  PUT  /admin/spending-limits/{tier_name}  — Change a tier's daily limit
  GET  /admin/audit-log                    — Org-wide audit trail
  GET  /admin/security-alerts              — Failed attempts, last 24 hours
  GET  /admin/dashboard                    — Headline counters
  GET  /admin/spending-overview            — Per-wallet spend against its limit
  POST /admin/locks/cleanup                — Collect expired and stale locks
  GET  /admin/wallets/{wallet_id}          — Any wallet with its owner and limit
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine.database import get_db
from wallet_engine.dependencies import require_admin
from wallet_engine.exceptions import AccountNotFoundError
from wallet_engine.logging import logger
from wallet_engine.models.user import User
from wallet_engine.models.wallet_account import WalletAccount
from wallet_engine.schemas.admin import (
    AdminWalletResponse,
    DashboardResponse,
    LockCleanupResponse,
    SecurityAlertResponse,
    SpendingLimitTierResponse,
    SpendingOverviewResponse,
    TierLimitUpdateRequest,
    TierLimitUpdateResponse,
)
from wallet_engine.schemas.wallet import AuditEntryResponse
from wallet_engine.services import (
    audit_service,
    lock_service,
    spending_limit_service,
    usage_service,
)
from wallet_engine.services.spending_limit_service import OverviewFilter

router = APIRouter()


# ---------------------------------------------------------------------------
# Spending limit tiers
# ---------------------------------------------------------------------------

@router.get(
    "/spending-limits",
    response_model=list[SpendingLimitTierResponse],
    summary="[Admin] List spending limit tiers",
)
async def admin_list_tiers(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await spending_limit_service.list_tiers(db)


@router.put(
    "/spending-limits/{tier_name}",
    response_model=TierLimitUpdateResponse,
    summary="[Admin] Change a tier's daily limit",
)
async def admin_set_tier_limit(
    tier_name: str,
    request: TierLimitUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Change the daily limit of a tier. Takes effect on the next purchase.

    Every change is recorded in admin_logs with the old and new value.
    """
    change = await spending_limit_service.set_tier_limit(
        db,
        admin=admin,
        tier_name=tier_name,
        new_daily_limit_kobo=request.daily_limit_kobo,
    )
    return TierLimitUpdateResponse(
        tier_name=change["tier_name"],
        old_limit_kobo=change["old_limit"],
        new_limit_kobo=change["new_limit"],
        version=change["version"],
    )


# ---------------------------------------------------------------------------
# Audit and monitoring
# ---------------------------------------------------------------------------

@router.get(
    "/audit-log",
    response_model=list[AuditEntryResponse],
    summary="[Admin] List the audit trail across all wallets",
)
async def admin_list_audit_log(
    account_id: uuid.UUID | None = Query(None, description="Filter by wallet"),
    status: str | None = Query(None, description="success or failed"),
    operation_type: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await audit_service.admin_list_entries(
        db,
        account_id=account_id,
        status=status,
        operation_type=operation_type,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/security-alerts",
    response_model=list[SecurityAlertResponse],
    summary="[Admin] Failed attempts from the last 24 hours",
)
async def admin_security_alerts(
    limit: int = Query(50, ge=1, le=200),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    alerts = await audit_service.get_security_alerts(db, limit=limit)
    return [
        SecurityAlertResponse(
            audit_id=alert["audit_id"],
            account_id=alert["account_id"],
            operation_type=alert["operation_type"],
            amount_kobo=alert["amount"],
            error_reason=alert["error_reason"],
            alert_type=alert["alert_type"],
            severity=alert["severity"],
            created_at=alert["created_at"],
        )
        for alert in alerts
    ]


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="[Admin] Dashboard counters",
)
async def admin_dashboard(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    stats = await audit_service.get_dashboard_stats(db)
    return DashboardResponse(
        total_wallets=stats["total_wallets"],
        new_wallets=stats["new_wallets"],
        established_wallets=stats["established_wallets"],
        total_spent_today_kobo=stats["total_spent_today"],
        blocked_transactions_today=stats["blocked_transactions_today"],
        active_locks=stats["active_locks"],
    )


@router.get(
    "/spending-overview",
    response_model=list[SpendingOverviewResponse],
    summary="[Admin] Today's spend per wallet against its limit",
)
async def admin_spending_overview(
    filter_by: OverviewFilter = Query("all", alias="filter", description="all, new, established or high_usage"),
    limit: int = Query(100, ge=1, le=500),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Member wallets, biggest spenders first, optionally narrowed by age or usage."""
    rows = await spending_limit_service.get_spending_overview(db, filter_by=filter_by, limit=limit)
    return [
        SpendingOverviewResponse(
            account_id=row.account_id,
            owner_name=row.owner_name,
            owner_email=row.owner_email,
            created_at=row.created_at,
            account_age_days=row.account_age_days,
            tier_name=row.tier_name,
            daily_limit_kobo=row.daily_limit,
            spent_today_kobo=row.spent_today,
            transaction_count=row.transaction_count,
            percentage_used=row.percentage_used,
        )
        for row in rows
    ]


@router.post(
    "/locks/cleanup",
    response_model=LockCleanupResponse,
    summary="[Admin] Delete expired and stale transaction locks",
)
async def admin_cleanup_locks(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    deleted = await lock_service.cleanup_locks(db)
    await db.commit()
    logger.info("lock cleanup deleted=%s admin=%s", deleted, admin.id)
    return LockCleanupResponse(deleted=deleted)


# ---------------------------------------------------------------------------
# Wallet oversight
# ---------------------------------------------------------------------------

@router.get(
    "/wallets/{wallet_id}",
    response_model=AdminWalletResponse,
    summary="[Admin] Get any wallet",
)
async def admin_get_wallet(
    wallet_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Any wallet's balance, owner, tier and today's spend, without ownership check."""
    result = await db.execute(
        select(WalletAccount, User)
        .join(User, WalletAccount.user_id == User.id)
        .where(WalletAccount.id == wallet_id)
    )
    row = result.one_or_none()
    if row is None:
        raise AccountNotFoundError(wallet_id)
    wallet, owner = row

    limit = await spending_limit_service.get_limit(db, wallet.id)
    usage = await usage_service.get_usage(db, wallet.id)
    return AdminWalletResponse(
        id=wallet.id,
        user_id=wallet.user_id,
        balance_kobo=wallet.balance_kobo,
        created_at=wallet.created_at,
        owner_email=owner.email,
        owner_name=owner.full_name,
        tier_name=limit.tier_name,
        daily_limit_kobo=limit.daily_limit,
        spent_today_kobo=usage.total_spent,
    )
