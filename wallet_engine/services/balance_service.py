"""
Balance store — the only code that changes a wallet balance.

Three primitives:
  - read_balance: plain read, no lock
  - atomic_debit: lock the row, re-check funds, subtract
  - atomic_credit: lock the row, add

Row locking:
  Every mutation selects the wallet row WITH FOR UPDATE first. On
  PostgreSQL a second transaction touching the same wallet blocks until the
  first commits or rolls back, then sees the new balance. On SQLite the
  FOR UPDATE is a no-op and BEGIN IMMEDIATE (see database.py) serialises
  the writers instead.

The funds check happens AFTER the lock is held. Checking first and locking
second lets two debits both pass the check against the same stale balance.

None of these functions commit. They run inside the caller's unit of work,
so the balance change lands in the same transaction as its audit entry.
"""

import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine.exceptions import AccountNotFoundError, InvalidAmountError
from wallet_engine.models.wallet_account import WalletAccount


@dataclass(frozen=True)
class BalanceMutation:
    """Outcome of a debit or credit. On a refused debit, before == after."""
    ok: bool
    balance_before: int
    balance_after: int


def validate_amount(amount_kobo: int) -> None:
    """Reject zero and negative amounts before anything is locked."""
    if isinstance(amount_kobo, bool) or not isinstance(amount_kobo, int) or amount_kobo <= 0:
        raise InvalidAmountError(amount_kobo)


async def get_wallet(db: AsyncSession, account_id: uuid.UUID) -> WalletAccount:
    """
    Load a wallet without locking it.

    Raises:
        AccountNotFoundError: If the wallet doesn't exist.
    """
    result = await db.execute(select(WalletAccount).where(WalletAccount.id == account_id))
    wallet = result.scalar_one_or_none()
    if wallet is None:
        raise AccountNotFoundError(account_id)
    return wallet


async def read_balance(db: AsyncSession, account_id: uuid.UUID) -> int:
    """Current balance in kobo."""
    result = await db.execute(
        select(WalletAccount.balance_kobo).where(WalletAccount.id == account_id)
    )
    balance = result.scalar_one_or_none()
    if balance is None:
        raise AccountNotFoundError(account_id)
    return balance


async def lock_wallet(db: AsyncSession, account_id: uuid.UUID) -> WalletAccount:
    """
    Take the exclusive row lock on a wallet for the rest of the transaction.

    populate_existing makes sure the balance is re-read from the row we now
    hold, not served from the session's identity map.
    """
    result = await db.execute(
        select(WalletAccount)
        .where(WalletAccount.id == account_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    wallet = result.scalar_one_or_none()
    if wallet is None:
        raise AccountNotFoundError(account_id)
    return wallet


async def atomic_debit(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount_kobo: int,
) -> BalanceMutation:
    """
    Subtract amount_kobo from a wallet if, under the row lock, it can afford it.

    A debit equal to the balance succeeds and leaves zero.

    Returns:
        BalanceMutation with ok=False (and an unchanged balance) when the
        wallet holds less than amount_kobo.

    Raises:
        InvalidAmountError: amount is not strictly positive (before locking).
        AccountNotFoundError: the wallet doesn't exist.
    """
    validate_amount(amount_kobo)
    wallet = await lock_wallet(db, account_id)

    balance_before = wallet.balance_kobo
    if balance_before < amount_kobo:
        return BalanceMutation(ok=False, balance_before=balance_before, balance_after=balance_before)

    wallet.balance_kobo = balance_before - amount_kobo
    await db.flush()
    return BalanceMutation(ok=True, balance_before=balance_before, balance_after=wallet.balance_kobo)


async def atomic_credit(
    db: AsyncSession,
    account_id: uuid.UUID,
    amount_kobo: int,
) -> BalanceMutation:
    """
    Add amount_kobo to a wallet under the row lock.

    Raises:
        InvalidAmountError: amount is not strictly positive (before locking).
        AccountNotFoundError: the wallet doesn't exist.
    """
    validate_amount(amount_kobo)
    wallet = await lock_wallet(db, account_id)

    balance_before = wallet.balance_kobo
    wallet.balance_kobo = balance_before + amount_kobo
    await db.flush()
    return BalanceMutation(ok=True, balance_before=balance_before, balance_after=wallet.balance_kobo)
