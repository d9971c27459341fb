"""
Spending limit models — tier configuration and per-day usage.

SpendingLimitTier
  A named daily ceiling that applies to accounts at least
  `min_account_age_days` old. The applicable tier is the active one with the
  largest min_account_age_days not exceeding the account's age. Changed only
  by administrators; `version` increments on every change so cached copies
  can tell they are stale.

DailyUsage
  One row per (account, calendar date): the running total of successful
  purchases that day. Created on the first successful purchase, incremented
  in the same transaction as each later debit, never decremented — a refund
  is a separate credit, not a limit give-back.
"""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import BigInteger, Boolean, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from wallet_engine.database import Base


class SpendingLimitTier(Base):
    __tablename__ = "spending_limit_tiers"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # "new_account", "established_account", ...
    tier_name: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
    )

    daily_limit_kobo: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    min_account_age_days: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class DailyUsage(Base):
    __tablename__ = "daily_usage"

    __table_args__ = (
        UniqueConstraint("account_id", "usage_date", name="uq_daily_usage_account_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("wallet_accounts.id"),
        nullable=False,
        index=True,
    )

    usage_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )

    total_spent_kobo: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    transaction_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    last_transaction_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
