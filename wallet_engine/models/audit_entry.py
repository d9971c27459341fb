"""
AuditEntry model — the wallet's forensic record.

One row per attempted balance mutation, successful or not. A failed purchase
and its retry produce two rows. Rows are inserted by audit_service and never
updated or deleted.

Key fields:
  - operation_type: the purchase category (airtime, data, electricity,
    goods), "deposit" or "refund"
  - amount_kobo: always positive
  - balance_before_kobo / balance_after_kobo: equal on every failed attempt
  - status: "success" or "failed"
  - error_reason: why a failed attempt failed (NULL on success)
  - external_reference: correlates to an upstream provider transaction; for
    refunds, the reference of the purchase being refunded
  - details: the category-specific payload, serialized from the request's
    discriminated union
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, CheckConstraint, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from wallet_engine.database import Base


class AuditStatus:
    SUCCESS = "success"
    FAILED = "failed"


class AuditEntry(Base):
    __tablename__ = "wallet_audit_log"

    __table_args__ = (
        CheckConstraint("amount_kobo > 0", name="ck_wallet_audit_log_positive_amount"),
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

    operation_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        index=True,
    )

    amount_kobo: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    balance_before_kobo: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    balance_after_kobo: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
    )

    error_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    external_reference: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    details: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    # Indexed for the date-range queries of the admin dashboard
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
