"""
TransactionLock model — "an operation with this dedup key is in flight".

A lock row is inserted when a wallet operation starts and moved to a
terminal status (completed/failed) when it ends. The partial unique index
below is what makes duplicate submissions collide: at most one row per
(account_id, dedup_key) may sit in status 'processing'.

Expiry:
  expires_at defaults to now + LOCK_TTL_SECONDS. A caller that crashes
  mid-flight leaves a processing row behind; once it is past expires_at,
  acquisition deletes it before inserting the new claim.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from wallet_engine.database import Base


class LockStatus:
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    TERMINAL = (COMPLETED, FAILED)


class TransactionLock(Base):
    __tablename__ = "transaction_locks"

    __table_args__ = (
        Index(
            "uq_transaction_locks_active",
            "account_id",
            "dedup_key",
            unique=True,
            sqlite_where=text("status = 'processing'"),
            postgresql_where=text("status = 'processing'"),
        ),
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

    # purchase category (airtime, data, ...), "deposit" or "refund"
    operation_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )

    dedup_key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(12),
        nullable=False,
        default=LockStatus.PROCESSING,
        index=True,
    )

    # "metadata" is reserved on declarative classes, hence the attribute name
    lock_metadata: Mapped[dict] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
