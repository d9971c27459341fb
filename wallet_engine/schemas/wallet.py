"""
Pydantic schemas for wallet endpoints.

All monetary amounts are integer kobo (e.g., ₦10.50 = 1050).
"""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field

from wallet_engine.schemas.details import DepositDetails, PurchaseDetails, RefundDetails


class WalletResponse(BaseModel):
    """Public representation of a wallet."""
    id: uuid.UUID
    user_id: uuid.UUID
    balance_kobo: int
    created_at: datetime

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    wallet_id: uuid.UUID
    balance_kobo: int


class PurchaseRequest(BaseModel):
    """Request body for POST /wallet/purchases."""
    amount_kobo: int = Field(gt=0, description="Amount in kobo (must be positive)")
    details: PurchaseDetails
    external_reference: str | None = Field(default=None, max_length=255)


class DepositRequest(BaseModel):
    """Request body for POST /internal/wallets/{id}/deposits."""
    amount_kobo: int = Field(gt=0)
    details: DepositDetails = Field(default_factory=DepositDetails)
    external_reference: str | None = Field(default=None, max_length=255)


class RefundRequest(BaseModel):
    """Request body for POST /internal/wallets/{id}/refunds."""
    amount_kobo: int = Field(gt=0)
    original_reference: str = Field(min_length=1, max_length=255)
    reason: str = Field(min_length=1, max_length=255)
    details: RefundDetails = Field(default_factory=RefundDetails)


class OperationResponse(BaseModel):
    """A completed purchase, deposit or refund."""
    success: bool
    operation_type: str
    amount_kobo: int
    balance_before_kobo: int
    balance_after_kobo: int
    audit_id: uuid.UUID


class SpendingLimitResponse(BaseModel):
    daily_limit_kobo: int
    tier_name: str
    account_age_days: int


class DailyUsageResponse(BaseModel):
    usage_date: date
    total_spent_kobo: int
    transaction_count: int


class SpendingSummaryResponse(BaseModel):
    tier_name: str
    account_age_days: int
    daily_limit_kobo: int
    spent_today_kobo: int
    transaction_count: int
    remaining_kobo: int
    percentage_used: float


class AuditEntryResponse(BaseModel):
    """One row of the audit ledger."""
    id: uuid.UUID
    account_id: uuid.UUID
    operation_type: str
    amount_kobo: int
    balance_before_kobo: int
    balance_after_kobo: int
    status: str
    error_reason: str | None
    external_reference: str | None
    details: dict
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionLockResponse(BaseModel):
    id: uuid.UUID
    operation_type: str
    dedup_key: str
    status: str
    created_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}
