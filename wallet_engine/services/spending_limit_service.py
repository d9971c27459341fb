"""
Spending limit evaluator — daily ceilings tiered by account age.

Newer wallets carry more fraud risk, so they get a lower daily ceiling.
Tiers live in spending_limit_tiers:

    new_account          min age 0 days   ₦3,000 / day   (defaults)
    established_account  min age 7 days   ₦10,000 / day

The applicable tier is the active one with the largest min_account_age_days
that doesn't exceed the wallet's age in whole days. If none matches (every
tier deactivated, say), the tier named NEW_ACCOUNT_TIER_NAME is used.

Tier cache:
  Tiers are read on nearly every purchase and change only when an admin
  edits them. TierCache holds an immutable snapshot of the table and a
  version number. Every read first fetches a stamp of the table (row count
  and the sum of the per-tier versions); set_tier_limit() bumps a version,
  so a change made by any process is picked up by every other process on
  its next read. set_tier_limit() also invalidates the local copy outright.

Limit check:
  current_spent + amount > daily_limit denies; equal is allowed. The wallet
  service runs this check while holding the wallet's row lock, in the same
  transaction as the debit and the usage increment, so two concurrent
  purchases can't both squeeze under the limit.

Oversight:
  get_spending_overview() lists member wallets with their tier and today's
  spend for the admin dashboard table.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine import clock
from wallet_engine.config import settings
from wallet_engine.exceptions import InvalidAmountError, TierNotFoundError, UnauthorizedAccessError
from wallet_engine.logging import logger
from wallet_engine.models.admin_log import AdminLog
from wallet_engine.models.spending_limit import DailyUsage, SpendingLimitTier
from wallet_engine.models.user import User, UserType
from wallet_engine.models.wallet_account import WalletAccount
from wallet_engine.services import balance_service, usage_service


@dataclass(frozen=True)
class TierSnapshot:
    tier_name: str
    daily_limit: int
    min_account_age_days: int
    is_active: bool


@dataclass(frozen=True)
class SpendingLimit:
    daily_limit: int
    tier_name: str
    account_age_days: int


@dataclass(frozen=True)
class LimitCheck:
    allowed: bool
    daily_limit: int
    current_spent: int
    amount: int
    would_be_total: int
    remaining: int
    tier_name: str
    account_age_days: int

    def as_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "daily_limit": self.daily_limit,
            "current_spent": self.current_spent,
            "amount": self.amount,
            "would_be_total": self.would_be_total,
            "remaining": self.remaining,
            "tier_name": self.tier_name,
            "account_age_days": self.account_age_days,
        }


class TierCache:
    """Versioned, process-local snapshot of the tier table."""

    def __init__(self) -> None:
        self._tiers: tuple[TierSnapshot, ...] | None = None
        self._stamp: tuple[int, int] | None = None
        self.version = 0

    async def _current_stamp(self, db: AsyncSession) -> tuple[int, int]:
        # Every tier edit bumps its row's version, so the sum moves on any change
        result = await db.execute(
            select(
                func.count(SpendingLimitTier.id),
                func.coalesce(func.sum(SpendingLimitTier.version), 0),
            )
        )
        count, version_sum = result.one()
        return int(count), int(version_sum)

    async def get(self, db: AsyncSession) -> tuple[TierSnapshot, ...]:
        stamp = await self._current_stamp(db)
        if self._tiers is None or stamp != self._stamp:
            result = await db.execute(
                select(SpendingLimitTier)
                .order_by(SpendingLimitTier.min_account_age_days.desc())
                .execution_options(populate_existing=True)
            )
            self._tiers = tuple(
                TierSnapshot(
                    tier_name=tier.tier_name,
                    daily_limit=tier.daily_limit_kobo,
                    min_account_age_days=tier.min_account_age_days,
                    is_active=tier.is_active,
                )
                for tier in result.scalars().all()
            )
            self._stamp = stamp
            self.version += 1
            logger.debug("tier cache loaded version=%s tiers=%s", self.version, len(self._tiers))
        return self._tiers

    def invalidate(self) -> None:
        self._tiers = None
        self._stamp = None


tier_cache = TierCache()


def account_age_days(created_at: datetime, now: datetime | None = None) -> int:
    """Whole days since creation (floored)."""
    now = now or clock.utcnow()
    return max(0, (clock.as_utc(now) - clock.as_utc(created_at)).days)


def select_tier(tiers: tuple[TierSnapshot, ...], age_days: int) -> TierSnapshot:
    """
    Pick the tier for an account of the given age.

    Raises:
        TierNotFoundError: neither a matching tier nor the new-account
            fallback is configured.
    """
    eligible = [t for t in tiers if t.is_active and t.min_account_age_days <= age_days]
    if eligible:
        return max(eligible, key=lambda t: t.min_account_age_days)

    for tier in tiers:
        if tier.tier_name == settings.NEW_ACCOUNT_TIER_NAME:
            logger.warning("no tier matches age=%s, falling back to %s", age_days, tier.tier_name)
            return tier

    raise TierNotFoundError(settings.NEW_ACCOUNT_TIER_NAME)


async def get_limit(
    db: AsyncSession,
    account_id: uuid.UUID,
    now: datetime | None = None,
) -> SpendingLimit:
    """
    The wallet's current daily ceiling and the tier it comes from.

    Raises:
        AccountNotFoundError: If the wallet doesn't exist.
    """
    wallet = await balance_service.get_wallet(db, account_id)
    age = account_age_days(wallet.created_at, now)
    tier = select_tier(await tier_cache.get(db), age)
    return SpendingLimit(daily_limit=tier.daily_limit, tier_name=tier.tier_name, account_age_days=age)


async def check_would_exceed(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount_kobo: int,
    on_date: date | None = None,
) -> LimitCheck:
    """
    Would spending amount_kobo today push the wallet past its ceiling?

    Monotonic: if amount A is denied at a given spend, any amount >= A is too.
    """
    limit = await get_limit(db, account_id)
    usage = await usage_service.get_usage(db, account_id, on_date)
    would_be_total = usage.total_spent + amount_kobo
    allowed = would_be_total <= limit.daily_limit

    if allowed:
        remaining = limit.daily_limit - would_be_total
    else:
        remaining = max(0, limit.daily_limit - usage.total_spent)

    return LimitCheck(
        allowed=allowed,
        daily_limit=limit.daily_limit,
        current_spent=usage.total_spent,
        amount=amount_kobo,
        would_be_total=would_be_total,
        remaining=remaining,
        tier_name=limit.tier_name,
        account_age_days=limit.account_age_days,
    )


# ---------------------------------------------------------------------------
# Tier administration
# ---------------------------------------------------------------------------

async def list_tiers(db: AsyncSession) -> list[SpendingLimitTier]:
    result = await db.execute(
        select(SpendingLimitTier).order_by(SpendingLimitTier.min_account_age_days)
    )
    return list(result.scalars().all())


async def seed_default_tiers(db: AsyncSession) -> list[SpendingLimitTier]:
    """
    Insert the default tiers that are missing. Existing tiers are untouched,
    so admin edits survive restarts. Does not commit.
    """
    defaults = [
        (
            settings.NEW_ACCOUNT_TIER_NAME,
            settings.NEW_ACCOUNT_DAILY_LIMIT_KOBO,
            0,
            f"Daily spending limit for accounts less than {settings.ESTABLISHED_ACCOUNT_AGE_DAYS} days old",
        ),
        (
            settings.ESTABLISHED_ACCOUNT_TIER_NAME,
            settings.ESTABLISHED_ACCOUNT_DAILY_LIMIT_KOBO,
            settings.ESTABLISHED_ACCOUNT_AGE_DAYS,
            f"Daily spending limit for accounts {settings.ESTABLISHED_ACCOUNT_AGE_DAYS}+ days old",
        ),
    ]

    existing = {tier.tier_name for tier in await list_tiers(db)}
    created = []
    for tier_name, daily_limit, min_age, description in defaults:
        if tier_name in existing:
            continue
        tier = SpendingLimitTier(
            tier_name=tier_name,
            daily_limit_kobo=daily_limit,
            min_account_age_days=min_age,
            description=description,
        )
        db.add(tier)
        created.append(tier)

    await db.flush()
    tier_cache.invalidate()
    return created


async def set_tier_limit(
    db: AsyncSession,
    admin: User,
    tier_name: str,
    new_daily_limit_kobo: int,
) -> dict:
    """
    Change a tier's daily limit. Admin only.

    Writes an admin_logs row with the old and new limit in the same
    transaction, commits, then invalidates the tier cache so the next
    purchase sees the new ceiling.

    Raises:
        UnauthorizedAccessError: caller is not an admin.
        InvalidAmountError: new limit is not positive.
        TierNotFoundError: no active tier with that name.
    """
    if admin.user_type != UserType.ADMIN:
        raise UnauthorizedAccessError("Admin privileges required")
    if new_daily_limit_kobo <= 0:
        raise InvalidAmountError(new_daily_limit_kobo)

    result = await db.execute(
        select(SpendingLimitTier)
        .where(SpendingLimitTier.tier_name == tier_name)
        .where(SpendingLimitTier.is_active.is_(True))
        .with_for_update()
    )
    tier = result.scalar_one_or_none()
    if tier is None:
        raise TierNotFoundError(tier_name)

    old_limit = tier.daily_limit_kobo
    tier.daily_limit_kobo = new_daily_limit_kobo
    tier.version += 1

    db.add(
        AdminLog(
            admin_id=admin.id,
            action="update_spending_limit",
            details={
                "tier_name": tier_name,
                "old_limit": old_limit,
                "new_limit": new_daily_limit_kobo,
                "version": tier.version,
            },
        )
    )
    await db.commit()
    tier_cache.invalidate()

    logger.info(
        "spending limit updated tier=%s old=%s new=%s admin=%s",
        tier_name, old_limit, new_daily_limit_kobo, admin.id,
    )
    return {
        "tier_name": tier_name,
        "old_limit": old_limit,
        "new_limit": new_daily_limit_kobo,
        "version": tier.version,
    }


# ---------------------------------------------------------------------------
# Oversight
# ---------------------------------------------------------------------------

OverviewFilter = Literal["all", "new", "established", "high_usage"]

# Share of the daily limit past which a wallet counts as high usage
HIGH_USAGE_PERCENT = 80


@dataclass(frozen=True)
class SpendingOverviewRow:
    account_id: uuid.UUID
    owner_name: str
    owner_email: str
    created_at: datetime
    account_age_days: int
    tier_name: str
    daily_limit: int
    spent_today: int
    transaction_count: int

    @property
    def percentage_used(self) -> float:
        if not self.daily_limit:
            return 0.0
        return round(self.spent_today * 100 / self.daily_limit, 2)


def _matches(filter_by: OverviewFilter, age: int, spent: int, daily_limit: int) -> bool:
    if filter_by == "new":
        return age < settings.ESTABLISHED_ACCOUNT_AGE_DAYS
    if filter_by == "established":
        return age >= settings.ESTABLISHED_ACCOUNT_AGE_DAYS
    if filter_by == "high_usage":
        return spent * 100 > daily_limit * HIGH_USAGE_PERCENT
    return True


async def get_spending_overview(
    db: AsyncSession,
    filter_by: OverviewFilter = "all",
    on_date: date | None = None,
    limit: int = 100,
) -> list[SpendingOverviewRow]:
    """
    Every member wallet with its age, tier and spend on a date, biggest
    spenders first. Wallets with no spend that day read as zero.

    filter_by: "new" and "established" split on ESTABLISHED_ACCOUNT_AGE_DAYS;
    "high_usage" keeps wallets past HIGH_USAGE_PERCENT of their limit.
    """
    on_date = on_date or clock.today()
    spent = func.coalesce(DailyUsage.total_spent_kobo, 0)
    result = await db.execute(
        select(WalletAccount, User, DailyUsage)
        .join(User, WalletAccount.user_id == User.id)
        .outerjoin(
            DailyUsage,
            and_(DailyUsage.account_id == WalletAccount.id, DailyUsage.usage_date == on_date),
        )
        .where(User.user_type == UserType.MEMBER)
        .order_by(spent.desc(), WalletAccount.created_at)
        .execution_options(populate_existing=True)
    )

    tiers = await tier_cache.get(db)
    now = clock.utcnow()
    rows = []
    for wallet, owner, usage in result.all():
        age = account_age_days(wallet.created_at, now)
        tier = select_tier(tiers, age)
        spent_today = usage.total_spent_kobo if usage is not None else 0
        if not _matches(filter_by, age, spent_today, tier.daily_limit):
            continue
        rows.append(
            SpendingOverviewRow(
                account_id=wallet.id,
                owner_name=owner.full_name,
                owner_email=owner.email,
                created_at=wallet.created_at,
                account_age_days=age,
                tier_name=tier.tier_name,
                daily_limit=tier.daily_limit,
                spent_today=spent_today,
                transaction_count=usage.transaction_count if usage is not None else 0,
            )
        )
    return rows[:limit]
