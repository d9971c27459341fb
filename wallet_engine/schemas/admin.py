"""Pydantic schemas for the admin endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from wallet_engine.schemas.wallet import WalletResponse


class SpendingLimitTierResponse(BaseModel):
    tier_name: str
    daily_limit_kobo: int
    min_account_age_days: int
    description: str | None
    is_active: bool
    version: int
    updated_at: datetime

    model_config = {"from_attributes": True}


class TierLimitUpdateRequest(BaseModel):
    """Request body for PUT /admin/spending-limits/{tier_name}."""
    daily_limit_kobo: int = Field(gt=0)


class TierLimitUpdateResponse(BaseModel):
    tier_name: str
    old_limit_kobo: int
    new_limit_kobo: int
    version: int


class SecurityAlertResponse(BaseModel):
    audit_id: uuid.UUID
    account_id: uuid.UUID
    operation_type: str
    amount_kobo: int
    error_reason: str | None
    alert_type: str
    severity: str
    created_at: datetime


class DashboardResponse(BaseModel):
    total_wallets: int
    new_wallets: int
    established_wallets: int
    total_spent_today_kobo: int
    blocked_transactions_today: int
    active_locks: int


class LockCleanupResponse(BaseModel):
    deleted: int


class AdminWalletResponse(WalletResponse):
    """A wallet with its owner's identity, for oversight."""
    owner_email: str
    owner_name: str
    tier_name: str
    daily_limit_kobo: int
    spent_today_kobo: int


class SpendingOverviewResponse(BaseModel):
    """One row of the admin spending overview table."""
    account_id: uuid.UUID
    owner_name: str
    owner_email: str
    created_at: datetime
    account_age_days: int
    tier_name: str
    daily_limit_kobo: int
    spent_today_kobo: int
    transaction_count: int
    percentage_used: float
