"""
WalletAccount model — the authoritative balance for one user.

Each wallet has:
  - A balance in integer kobo (1 naira = 100 kobo)
  - A creation timestamp that never changes; account age is derived from it
    and selects the spending limit tier

Balance management:
  `balance_kobo` is only ever changed by atomic_debit/atomic_credit in
  balance_service, under a row lock, in the same database transaction as
  the audit entry that describes the change.

  A CHECK constraint enforces that the balance can never go negative. The
  service checks too, after taking the row lock; the constraint is the last
  line of defence.

Why integer kobo?
  Binary floating point drifts (0.1 + 0.2 != 0.3). Integers are exact, so
  every balance equals the exact sum of its successful mutations.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wallet_engine.database import Base


class WalletAccount(Base):
    __tablename__ = "wallet_accounts"

    __table_args__ = (
        CheckConstraint(
            "balance_kobo >= 0",
            name="ck_wallet_accounts_non_negative_balance",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # One wallet per user
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        unique=True,
        nullable=False,
    )

    balance_kobo: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    # Immutable: account age (and so the spending tier) is measured from here
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

    # --- Relationships ---
    user: Mapped["User"] = relationship(
        back_populates="wallet",
    )
