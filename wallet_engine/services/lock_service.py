"""
Transaction lock manager — deduplicates in-flight wallet operations.

Double-tapping "Buy" should charge once. Every wallet operation derives a
dedup key from (account, operation type, target, amount, current minute)
and claims it here before touching the balance. A second claim on the same
key while the first is still processing is denied.

Correctness comes from the partial unique index on transaction_locks
(account_id, dedup_key WHERE status = 'processing'): two inserts can't both
succeed. The pre-insert lookup only gives the common case a clean answer;
the IntegrityError path covers the race between lookup and insert.

Claims are committed immediately, in their own short transaction, so a
concurrent duplicate sees them and so a crashed caller leaves a lock that
expires on its own (LOCK_TTL_SECONDS).

Denial is a normal outcome, returned as LockDenial, never raised.
"""

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine import clock
from wallet_engine.config import settings
from wallet_engine.exceptions import LockNotFoundError
from wallet_engine.logging import logger
from wallet_engine.models.transaction_lock import LockStatus, TransactionLock

DUPLICATE_IN_PROGRESS = "Transaction already in progress"
DUPLICATE_COMPLETED = "Transaction already completed"


@dataclass(frozen=True)
class LockGrant:
    lock_id: uuid.UUID
    expires_at: datetime
    granted: bool = field(default=True, init=False)


@dataclass(frozen=True)
class LockDenial:
    existing_lock_id: uuid.UUID | None
    existing_expiry: datetime | None
    reason: str = DUPLICATE_IN_PROGRESS
    granted: bool = field(default=False, init=False)


def build_dedup_key(
    account_id: uuid.UUID,
    operation_type: str,
    target: str,
    amount_kobo: int,
    now: datetime | None = None,
) -> str:
    """
    Derive the dedup key for one logical operation.

    The time bucket (DEDUP_BUCKET_SECONDS wide) keeps the key from blocking a
    deliberate repeat purchase later in the day: only submissions inside the
    same bucket collide. The readable prefix makes lock rows easy to eyeball;
    the digest keeps arbitrary targets inside the column width.
    """
    now = clock.as_utc(now or clock.utcnow())
    bucket_width = settings.DEDUP_BUCKET_SECONDS
    bucket = int(now.timestamp()) // bucket_width * bucket_width
    raw = f"{account_id}|{operation_type}|{target}|{amount_kobo}|{bucket}"
    digest = hashlib.sha256(raw.encode()).hexdigest()[:32]
    return f"{operation_type}:{amount_kobo}:{bucket}:{digest}"


async def _find_active_lock(
    db: AsyncSession,
    account_id: uuid.UUID,
    dedup_key: str,
    now: datetime,
) -> TransactionLock | None:
    result = await db.execute(
        select(TransactionLock)
        .where(TransactionLock.account_id == account_id)
        .where(TransactionLock.dedup_key == dedup_key)
        .where(TransactionLock.status == LockStatus.PROCESSING)
        .where(TransactionLock.expires_at > now)
    )
    return result.scalars().first()


async def cleanup_locks(db: AsyncSession, now: datetime | None = None) -> int:
    """
    Delete locks that are expired, or terminal and past the retention window.

    Housekeeping only; does not commit. Returns the number of rows removed.
    """
    now = now or clock.utcnow()
    stale_before = now - timedelta(seconds=settings.LOCK_RETENTION_SECONDS)
    result = await db.execute(
        delete(TransactionLock).where(
            or_(
                TransactionLock.expires_at < now,
                and_(
                    TransactionLock.status.in_(LockStatus.TERMINAL),
                    TransactionLock.created_at < stale_before,
                ),
            )
        )
    )
    return result.rowcount or 0


async def acquire_lock(
    db: AsyncSession,
    account_id: uuid.UUID,
    operation_type: str,
    dedup_key: str,
    metadata: dict | None = None,
) -> LockGrant | LockDenial:
    """
    Claim a dedup key for an operation about to run.

    Commits the session: the claim must be visible to other transactions
    before the caller starts its unit of work.

    Returns:
        LockGrant(lock_id, expires_at) when the key was free, otherwise
        LockDenial carrying the blocking lock's id and expiry.
    """
    now = clock.utcnow()
    await cleanup_locks(db, now=now)

    existing = await _find_active_lock(db, account_id, dedup_key, now)
    if existing is not None:
        denial = LockDenial(existing_lock_id=existing.id, existing_expiry=existing.expires_at)
        await db.commit()
        logger.info("lock denied operation=%s key=%s", operation_type, dedup_key)
        return denial

    lock = TransactionLock(
        account_id=account_id,
        operation_type=operation_type,
        dedup_key=dedup_key,
        status=LockStatus.PROCESSING,
        lock_metadata=metadata or {},
        created_at=now,
        expires_at=now + timedelta(seconds=settings.LOCK_TTL_SECONDS),
    )
    db.add(lock)
    try:
        await db.commit()
    except IntegrityError:
        # Lost the race to a concurrent claim on the same key
        await db.rollback()
        existing = await _find_active_lock(db, account_id, dedup_key, clock.utcnow())
        await db.commit()
        logger.info("lock denied on insert race operation=%s key=%s", operation_type, dedup_key)
        return LockDenial(
            existing_lock_id=existing.id if existing else None,
            existing_expiry=existing.expires_at if existing else None,
        )

    logger.debug("lock granted lock_id=%s operation=%s", lock.id, operation_type)
    return LockGrant(lock_id=lock.id, expires_at=lock.expires_at)


async def release_lock(db: AsyncSession, lock_id: uuid.UUID, status: str) -> TransactionLock:
    """
    Move a lock to a terminal status; the key is free again straight away.

    Does not commit — on the success path the release rides in the same
    transaction as the balance mutation.

    Raises:
        ValueError: status is not completed/failed.
        LockNotFoundError: the lock doesn't exist (e.g. already collected).
    """
    if status not in LockStatus.TERMINAL:
        raise ValueError(f"Lock status must be one of {LockStatus.TERMINAL}, got {status!r}")

    lock = await db.get(TransactionLock, lock_id)
    if lock is None:
        raise LockNotFoundError(lock_id)

    lock.status = status
    await db.flush()
    return lock


async def find_completed_lock(
    db: AsyncSession,
    account_id: uuid.UUID,
    dedup_key: str,
) -> TransactionLock | None:
    """
    A lock on this key that already finished successfully.

    The key carries its time bucket, so a match means the same operation
    completed earlier in the current bucket.
    """
    result = await db.execute(
        select(TransactionLock)
        .where(TransactionLock.account_id == account_id)
        .where(TransactionLock.dedup_key == dedup_key)
        .where(TransactionLock.status == LockStatus.COMPLETED)
    )
    return result.scalars().first()


async def list_recent_locks(
    db: AsyncSession,
    account_id: uuid.UUID,
    hours: int = 24,
) -> list[TransactionLock]:
    """The wallet's locks from the last `hours`, newest first."""
    since = clock.utcnow() - timedelta(hours=hours)
    result = await db.execute(
        select(TransactionLock)
        .where(TransactionLock.account_id == account_id)
        .where(TransactionLock.created_at > since)
        .order_by(TransactionLock.created_at.desc())
    )
    return list(result.scalars().all())


async def count_active_locks(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count(TransactionLock.id))
        .where(TransactionLock.status == LockStatus.PROCESSING)
        .where(TransactionLock.expires_at > clock.utcnow())
    )
    return result.scalar_one()
