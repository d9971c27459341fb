"""
Daily usage tracker — per-wallet, per-day running total of purchases.

record_spend() runs inside the purchase's unit of work, after the debit
succeeds. If that transaction rolls back, the usage increment rolls back with
it, so the recorded total always equals the sum of successful purchases.

Refunds never call into this module: a refund is an independent credit and
does not give spending limit back.
"""

import uuid
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine import clock
from wallet_engine.models.spending_limit import DailyUsage


@dataclass(frozen=True)
class UsageSnapshot:
    usage_date: date
    total_spent: int
    transaction_count: int


async def get_usage(
    db: AsyncSession,
    account_id: uuid.UUID,
    on_date: date | None = None,
) -> UsageSnapshot:
    """Usage for one wallet on one date; zeros when nothing was spent."""
    on_date = on_date or clock.today()
    result = await db.execute(
        select(DailyUsage)
        .where(DailyUsage.account_id == account_id)
        .where(DailyUsage.usage_date == on_date)
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return UsageSnapshot(usage_date=on_date, total_spent=0, transaction_count=0)
    return UsageSnapshot(
        usage_date=on_date,
        total_spent=row.total_spent_kobo,
        transaction_count=row.transaction_count,
    )


async def record_spend(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount_kobo: int,
    on_date: date | None = None,
) -> DailyUsage:
    """
    Add one successful purchase to the day's total.

    Upsert: the first purchase of the day creates the row with count 1, later
    ones add to it. Callers hold the wallet's row lock, which serialises
    writers for the same account, so the read-then-write here can't lose an
    update. Does not commit.
    """
    on_date = on_date or clock.today()
    now = clock.utcnow()

    result = await db.execute(
        select(DailyUsage)
        .where(DailyUsage.account_id == account_id)
        .where(DailyUsage.usage_date == on_date)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()

    if row is None:
        row = DailyUsage(
            account_id=account_id,
            usage_date=on_date,
            total_spent_kobo=amount_kobo,
            transaction_count=1,
            last_transaction_at=now,
        )
        db.add(row)
    else:
        row.total_spent_kobo += amount_kobo
        row.transaction_count += 1
        row.last_transaction_at = now

    await db.flush()
    return row


async def total_spent_on(db: AsyncSession, on_date: date | None = None) -> int:
    """Sum of every wallet's spend on a date (admin dashboard)."""
    on_date = on_date or clock.today()
    result = await db.execute(
        select(func.coalesce(func.sum(DailyUsage.total_spent_kobo), 0))
        .where(DailyUsage.usage_date == on_date)
    )
    return result.scalar_one()
