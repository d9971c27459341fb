"""
Wallet service — composes the engine's parts into purchase, deposit, refund.

Every public operation runs the same shape of unit of work:

  1. Validate the amount and that the wallet exists. Failures here raise
     before anything is locked and leave no audit entry.
  2. Derive the dedup key and claim it (lock_service). The claim commits on
     its own so a concurrent duplicate is denied at this step. A claim on a
     key that already completed in the current bucket is a duplicate too:
     identical calls queued behind the first one must not charge again.
  3. Take the wallet's row lock.
  4. Purchases only: check the daily limit while holding the row lock.
  5. Debit or credit the balance.
  6. Purchases only: add the amount to today's usage.
  7. Write the audit entry, release the dedup lock as completed, commit.

Outcomes:
  - success: OperationResult(success=True, balance_after, audit_id)
  - policy denial (duplicate, limit_exceeded, insufficient_funds): an
    OperationResult with success=False and `denial` set. A failed audit
    entry is committed and the balance is unchanged. Never raised.
  - fault (database error, anything unexpected): the unit of work is rolled
    back, a failed audit entry and the lock release are attempted in a fresh
    transaction, then TransactionFailedError is raised. If that secondary
    write fails too it is logged and the original fault still surfaces.

Provider calls (crediting a SIM, vending a token) happen outside this module.
A purchase reserves the funds; if the provider call later fails, the caller
issues a refund.
"""

import uuid
from dataclasses import dataclass
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine import state_machine
from wallet_engine.exceptions import LockNotFoundError, TransactionFailedError
from wallet_engine.logging import account_id_ctx, logger
from wallet_engine.models.audit_entry import AuditStatus
from wallet_engine.models.transaction_lock import LockStatus
from wallet_engine.schemas.details import DepositDetails, PurchaseDetails, RefundDetails
from wallet_engine.services import (
    audit_service,
    balance_service,
    lock_service,
    spending_limit_service,
    usage_service,
)
from wallet_engine.services.spending_limit_service import LimitCheck, SpendingLimit
from wallet_engine.services.usage_service import UsageSnapshot
from wallet_engine.state_machine import OperationState

DENIED_DUPLICATE = "duplicate"
DENIED_LIMIT_EXCEEDED = "limit_exceeded"
DENIED_INSUFFICIENT_FUNDS = "insufficient_funds"

DEPOSIT = "deposit"
REFUND = "refund"


@dataclass(frozen=True)
class OperationResult:
    success: bool
    operation_type: str
    amount: int
    balance_before: int
    balance_after: int
    audit_id: uuid.UUID
    denial: str | None = None
    detail: str | None = None
    limit_check: LimitCheck | None = None


@dataclass
class _Operation:
    """Everything one call needs to carry through the unit of work."""
    account_id: uuid.UUID
    operation_type: str
    amount: int
    dedup_target: str
    details: dict
    external_reference: str | None
    is_purchase: bool
    state: OperationState
    lock_id: uuid.UUID | None = None


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------

async def purchase(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount_kobo: int,
    details: PurchaseDetails,
    external_reference: str | None = None,
) -> OperationResult:
    """
    Debit the wallet for a purchase, subject to dedup and the daily limit.

    The limit is checked before the debit, so a purchase that is both over
    the limit and unaffordable reports limit_exceeded.

    Raises:
        InvalidAmountError: amount is not strictly positive.
        AccountNotFoundError: the wallet doesn't exist.
        TransactionFailedError: an unexpected fault; nothing was charged.
    """
    op = _Operation(
        account_id=account_id,
        operation_type=details.category,
        amount=amount_kobo,
        dedup_target=details.dedup_target,
        details=details.model_dump(),
        external_reference=external_reference,
        is_purchase=True,
        state=OperationState(),
    )
    return await _execute(db, op)


async def deposit(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount_kobo: int,
    details: DepositDetails | None = None,
    external_reference: str | None = None,
) -> OperationResult:
    """
    Credit the wallet. No limit check; deposits don't count as spend.

    Without an external_reference the settlement is identified by its
    channel and payer name.
    """
    details = details or DepositDetails()
    op = _Operation(
        account_id=account_id,
        operation_type=DEPOSIT,
        amount=amount_kobo,
        dedup_target=external_reference or f"{details.channel}:{details.payer_name or ''}",
        details=details.model_dump(),
        external_reference=external_reference,
        is_purchase=False,
        state=OperationState(),
    )
    return await _execute(db, op)


async def refund(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount_kobo: int,
    original_reference: str,
    reason: str,
    details: RefundDetails | None = None,
) -> OperationResult:
    """
    Credit the wallet back for an earlier purchase.

    The audit entry's external_reference is the original purchase's
    reference and its details carry the reason. Today's usage is not
    reduced: the refund is a new credit, not a limit give-back.
    """
    details = details or RefundDetails()
    op = _Operation(
        account_id=account_id,
        operation_type=REFUND,
        amount=amount_kobo,
        dedup_target=original_reference,
        details={**details.model_dump(), "reason": reason},
        external_reference=original_reference,
        is_purchase=False,
        state=OperationState(),
    )
    return await _execute(db, op)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_balance(db: AsyncSession, account_id: uuid.UUID) -> int:
    return await balance_service.read_balance(db, account_id)


async def get_spending_limit(db: AsyncSession, account_id: uuid.UUID) -> SpendingLimit:
    return await spending_limit_service.get_limit(db, account_id)


async def get_daily_usage(
    db: AsyncSession,
    account_id: uuid.UUID,
    on_date: date | None = None,
) -> UsageSnapshot:
    await balance_service.get_wallet(db, account_id)
    return await usage_service.get_usage(db, account_id, on_date)


async def get_spending_summary(db: AsyncSession, account_id: uuid.UUID) -> dict:
    """Today's limit, spend and headroom in one view."""
    limit = await spending_limit_service.get_limit(db, account_id)
    usage = await usage_service.get_usage(db, account_id)
    remaining = max(0, limit.daily_limit - usage.total_spent)
    percentage_used = round(usage.total_spent * 100 / limit.daily_limit, 2) if limit.daily_limit else 0.0
    return {
        "tier_name": limit.tier_name,
        "account_age_days": limit.account_age_days,
        "daily_limit": limit.daily_limit,
        "spent_today": usage.total_spent,
        "transaction_count": usage.transaction_count,
        "remaining": remaining,
        "percentage_used": percentage_used,
    }


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------

async def _execute(db: AsyncSession, op: _Operation) -> OperationResult:
    # Precondition violations: raise before any lock, no audit entry
    balance_service.validate_amount(op.amount)
    await balance_service.get_wallet(db, op.account_id)

    token = account_id_ctx.set(str(op.account_id))
    try:
        try:
            return await _run(db, op)
        except Exception as exc:
            await _record_fault(db, op, exc)
            raise TransactionFailedError(op.operation_type, op.account_id) from exc
    finally:
        account_id_ctx.reset(token)


async def _run(db: AsyncSession, op: _Operation) -> OperationResult:
    dedup_key = lock_service.build_dedup_key(
        op.account_id, op.operation_type, op.dedup_target, op.amount
    )
    claim = await lock_service.acquire_lock(
        db,
        op.account_id,
        op.operation_type,
        dedup_key,
        metadata={"amount": op.amount, "external_reference": op.external_reference},
    )

    if not claim.granted:
        balance = await balance_service.read_balance(db, op.account_id)
        return await _deny(db, op, DENIED_DUPLICATE, claim.reason, balance)

    op.lock_id = claim.lock_id
    op.state.advance(state_machine.LOCK_ACQUIRED)

    # Checked after our own claim: a twin that finished first is visible by now
    if await lock_service.find_completed_lock(db, op.account_id, dedup_key) is not None:
        balance = await balance_service.read_balance(db, op.account_id)
        return await _deny(db, op, DENIED_DUPLICATE, lock_service.DUPLICATE_COMPLETED, balance)

    wallet = await balance_service.lock_wallet(db, op.account_id)

    check = None
    if op.is_purchase:
        check = await spending_limit_service.check_would_exceed(db, op.account_id, op.amount)
        op.state.advance(state_machine.LIMIT_CHECKED)
        if not check.allowed:
            return await _deny(
                db, op, DENIED_LIMIT_EXCEEDED, audit_service.REASON_LIMIT_EXCEEDED,
                wallet.balance_kobo, check,
            )
        mutation = await balance_service.atomic_debit(db, op.account_id, op.amount)
    else:
        mutation = await balance_service.atomic_credit(db, op.account_id, op.amount)

    if not mutation.ok:
        return await _deny(
            db, op, DENIED_INSUFFICIENT_FUNDS, audit_service.REASON_INSUFFICIENT_FUNDS,
            mutation.balance_before, check,
        )
    op.state.advance(state_machine.BALANCE_MUTATED)

    if op.is_purchase:
        await usage_service.record_spend(db, op.account_id, op.amount)
        op.state.advance(state_machine.USAGE_RECORDED)

    audit_id = await audit_service.record_entry(
        db,
        account_id=op.account_id,
        operation_type=op.operation_type,
        amount_kobo=op.amount,
        balance_before_kobo=mutation.balance_before,
        balance_after_kobo=mutation.balance_after,
        status=AuditStatus.SUCCESS,
        external_reference=op.external_reference,
        details=op.details,
    )
    op.state.advance(state_machine.AUDITED)

    await _release(db, op.lock_id, LockStatus.COMPLETED)
    await db.commit()
    op.state.advance(state_machine.LOCK_RELEASED)

    logger.info("%s completed audit_id=%s", op.operation_type, audit_id)
    return OperationResult(
        success=True,
        operation_type=op.operation_type,
        amount=op.amount,
        balance_before=mutation.balance_before,
        balance_after=mutation.balance_after,
        audit_id=audit_id,
        limit_check=check,
    )


async def _deny(
    db: AsyncSession,
    op: _Operation,
    denial: str,
    reason: str,
    balance: int,
    check: LimitCheck | None = None,
) -> OperationResult:
    """Audit a policy denial, release the lock as failed, commit."""
    op.state.advance(state_machine.FAILED)

    details = dict(op.details)
    if check is not None:
        details["limit_check"] = check.as_dict()

    audit_id = await audit_service.record_entry(
        db,
        account_id=op.account_id,
        operation_type=op.operation_type,
        amount_kobo=op.amount,
        balance_before_kobo=balance,
        balance_after_kobo=balance,
        status=AuditStatus.FAILED,
        error_reason=reason,
        external_reference=op.external_reference,
        details=details,
    )
    op.state.advance(state_machine.AUDITED)

    if op.lock_id is not None:
        await _release(db, op.lock_id, LockStatus.FAILED)
    await db.commit()
    if op.lock_id is not None:
        op.state.advance(state_machine.LOCK_RELEASED)

    logger.info("%s denied reason=%s audit_id=%s", op.operation_type, denial, audit_id)
    return OperationResult(
        success=False,
        operation_type=op.operation_type,
        amount=op.amount,
        balance_before=balance,
        balance_after=balance,
        audit_id=audit_id,
        denial=denial,
        detail=reason,
        limit_check=check,
    )


async def _release(db: AsyncSession, lock_id: uuid.UUID, status: str) -> None:
    try:
        await lock_service.release_lock(db, lock_id, status)
    except LockNotFoundError:
        # Expired and collected mid-flight; nothing left to release
        logger.warning("lock %s vanished before release", lock_id)


async def _record_fault(db: AsyncSession, op: _Operation, exc: Exception) -> None:
    """
    Roll back, then record the failure in a fresh transaction.

    Best effort: if the store is down this fails too, and the error is
    logged rather than raised over the original fault.
    """
    logger.error(
        "%s failed at state=%s: %s",
        op.operation_type, op.state.current, exc,
        exc_info=exc,
    )
    if op.state.current != state_machine.FAILED:
        op.state.advance(state_machine.FAILED)

    try:
        await db.rollback()
        balance = await balance_service.read_balance(db, op.account_id)
        await audit_service.record_entry(
            db,
            account_id=op.account_id,
            operation_type=op.operation_type,
            amount_kobo=op.amount,
            balance_before_kobo=balance,
            balance_after_kobo=balance,
            status=AuditStatus.FAILED,
            error_reason=f"Unexpected error: {type(exc).__name__}",
            external_reference=op.external_reference,
            details=op.details,
        )
        if op.lock_id is not None:
            await _release(db, op.lock_id, LockStatus.FAILED)
        await db.commit()
    except Exception:
        logger.exception("could not record failure of %s", op.operation_type)
        await db.rollback()
        return

    op.state.advance(state_machine.AUDITED)
    if op.lock_id is not None:
        op.state.advance(state_machine.LOCK_RELEASED)
