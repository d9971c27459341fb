"""
Audit ledger — append-only record of every attempted balance mutation.

The write side is one function, record_entry(), called by the wallet service
on every terminal outcome: success, insufficient funds, limit exceeded,
duplicate submission and unexpected fault. Nothing in this codebase updates
or deletes an audit row.

The read side backs the member's history view and the admin oversight
endpoints (filtered listing, security alerts, dashboard counters).
"""

import uuid
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine import clock
from wallet_engine.config import settings
from wallet_engine.models.audit_entry import AuditEntry, AuditStatus
from wallet_engine.models.user import User, UserType
from wallet_engine.models.wallet_account import WalletAccount
from wallet_engine.services import lock_service, usage_service

# error_reason values written by the wallet service, used to classify alerts
REASON_LIMIT_EXCEEDED = "Daily spending limit exceeded"
REASON_DUPLICATE = lock_service.DUPLICATE_IN_PROGRESS
REASON_DUPLICATE_COMPLETED = lock_service.DUPLICATE_COMPLETED
REASON_INSUFFICIENT_FUNDS = "Insufficient balance"

_ALERT_RULES = {
    REASON_LIMIT_EXCEEDED: ("SPENDING_LIMIT_EXCEEDED", "HIGH"),
    REASON_DUPLICATE: ("DUPLICATE_TRANSACTION_ATTEMPT", "MEDIUM"),
    REASON_DUPLICATE_COMPLETED: ("DUPLICATE_TRANSACTION_ATTEMPT", "MEDIUM"),
    REASON_INSUFFICIENT_FUNDS: ("INSUFFICIENT_BALANCE", "LOW"),
}


async def record_entry(
    db: AsyncSession,
    account_id: uuid.UUID,
    operation_type: str,
    amount_kobo: int,
    balance_before_kobo: int,
    balance_after_kobo: int,
    status: str,
    error_reason: str | None = None,
    external_reference: str | None = None,
    details: dict | None = None,
) -> uuid.UUID:
    """
    Append one audit entry and return its id.

    Flushes so the id is assigned, but does not commit: the entry belongs to
    whichever transaction the caller is running.
    """
    entry = AuditEntry(
        account_id=account_id,
        operation_type=operation_type,
        amount_kobo=amount_kobo,
        balance_before_kobo=balance_before_kobo,
        balance_after_kobo=balance_after_kobo,
        status=status,
        error_reason=error_reason,
        external_reference=external_reference,
        details=details or {},
        created_at=clock.utcnow(),
    )
    db.add(entry)
    await db.flush()
    return entry.id


def _filtered(query, status: str | None, operation_type: str | None):
    if status is not None:
        query = query.where(AuditEntry.status == status)
    if operation_type is not None:
        query = query.where(AuditEntry.operation_type == operation_type)
    return query


async def list_entries(
    db: AsyncSession,
    account_id: uuid.UUID,
    status: str | None = None,
    operation_type: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AuditEntry]:
    """One wallet's audit trail, newest first."""
    query = select(AuditEntry).where(AuditEntry.account_id == account_id)
    query = _filtered(query, status, operation_type)
    result = await db.execute(
        query.order_by(AuditEntry.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())


async def admin_list_entries(
    db: AsyncSession,
    account_id: uuid.UUID | None = None,
    status: str | None = None,
    operation_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[AuditEntry]:
    """Organisation-wide audit trail for administrators."""
    query = select(AuditEntry)
    if account_id is not None:
        query = query.where(AuditEntry.account_id == account_id)
    query = _filtered(query, status, operation_type)
    result = await db.execute(
        query.order_by(AuditEntry.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())


def classify_alert(error_reason: str | None) -> tuple[str, str]:
    """Map a failure reason to (alert_type, severity)."""
    return _ALERT_RULES.get(error_reason, ("OTHER_ERROR", "LOW"))


async def get_security_alerts(db: AsyncSession, limit: int = 50) -> list[dict]:
    """
    Failed attempts from the last 24 hours, each tagged with an alert type
    and severity. Limit breaches rank highest: repeated ones on a young
    wallet are the usual fraud signal.
    """
    since = clock.utcnow() - timedelta(hours=24)
    result = await db.execute(
        select(AuditEntry)
        .where(AuditEntry.status == AuditStatus.FAILED)
        .where(AuditEntry.created_at > since)
        .order_by(AuditEntry.created_at.desc())
        .limit(limit)
    )

    alerts = []
    for entry in result.scalars().all():
        alert_type, severity = classify_alert(entry.error_reason)
        alerts.append({
            "audit_id": entry.id,
            "account_id": entry.account_id,
            "operation_type": entry.operation_type,
            "amount": entry.amount_kobo,
            "error_reason": entry.error_reason,
            "alert_type": alert_type,
            "severity": severity,
            "created_at": entry.created_at,
        })
    return alerts


def _start_of_today() -> datetime:
    now = clock.utcnow()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


async def get_dashboard_stats(db: AsyncSession) -> dict:
    """
    Headline counters for the admin dashboard.

    Wallet counts cover members only: an operator's account keeps the wallet
    it was provisioned with at signup, but that wallet is never used.
    """
    established_before = clock.utcnow() - timedelta(days=settings.ESTABLISHED_ACCOUNT_AGE_DAYS)
    member_wallets = (
        select(func.count(WalletAccount.id))
        .join(User, WalletAccount.user_id == User.id)
        .where(User.user_type == UserType.MEMBER)
    )

    total_wallets = (await db.execute(member_wallets)).scalar_one()

    new_wallets = (
        await db.execute(member_wallets.where(WalletAccount.created_at > established_before))
    ).scalar_one()

    blocked_today = (
        await db.execute(
            select(func.count(AuditEntry.id))
            .where(AuditEntry.status == AuditStatus.FAILED)
            .where(AuditEntry.created_at >= _start_of_today())
        )
    ).scalar_one()

    return {
        "total_wallets": total_wallets,
        "new_wallets": new_wallets,
        "established_wallets": total_wallets - new_wallets,
        "total_spent_today": await usage_service.total_spent_on(db),
        "blocked_transactions_today": blocked_today,
        "active_locks": await lock_service.count_active_locks(db),
    }
