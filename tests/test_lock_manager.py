"""
Tests for the transaction lock manager.

These tests verify:
  - The first claim on a dedup key is granted, a second one is denied
  - Releasing a lock frees its key immediately
  - An expired processing lock no longer blocks its key
  - Housekeeping deletes expired and stale terminal locks, keeps the rest
  - The partial unique index refuses two processing rows for one key
  - Dedup keys are deterministic within a time bucket
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from wallet_engine import clock
from wallet_engine.config import settings
from wallet_engine.exceptions import LockNotFoundError
from wallet_engine.models.transaction_lock import LockStatus, TransactionLock
from wallet_engine.services import lock_service


def _lock_row(account_id, dedup_key, status=LockStatus.PROCESSING, age=timedelta(0), ttl=None):
    created = clock.utcnow() - age
    return TransactionLock(
        account_id=account_id,
        operation_type="airtime",
        dedup_key=dedup_key,
        status=status,
        lock_metadata={},
        created_at=created,
        expires_at=created + (ttl if ttl is not None else timedelta(seconds=settings.LOCK_TTL_SECONDS)),
    )


class TestAcquire:
    """Claiming dedup keys."""

    async def test_first_claim_is_granted(self, db_session, make_wallet):
        wallet = await make_wallet()

        claim = await lock_service.acquire_lock(db_session, wallet.id, "airtime", "key-a")

        assert claim.granted is True
        assert claim.expires_at > clock.utcnow()
        lock = await db_session.get(TransactionLock, claim.lock_id)
        assert lock.status == LockStatus.PROCESSING

    async def test_second_claim_on_same_key_is_denied(self, db_session, make_wallet):
        wallet = await make_wallet()

        first = await lock_service.acquire_lock(db_session, wallet.id, "airtime", "key-a")
        second = await lock_service.acquire_lock(db_session, wallet.id, "airtime", "key-a")

        assert second.granted is False
        assert second.reason == "Transaction already in progress"
        assert second.existing_lock_id == first.lock_id
        assert second.existing_expiry is not None

    async def test_different_keys_do_not_collide(self, db_session, make_wallet):
        wallet = await make_wallet()

        first = await lock_service.acquire_lock(db_session, wallet.id, "airtime", "key-a")
        second = await lock_service.acquire_lock(db_session, wallet.id, "airtime", "key-b")

        assert first.granted and second.granted

    async def test_same_key_on_different_wallets_do_not_collide(self, db_session, make_wallet):
        a = await make_wallet()
        b = await make_wallet()

        first = await lock_service.acquire_lock(db_session, a.id, "airtime", "key-a")
        second = await lock_service.acquire_lock(db_session, b.id, "airtime", "key-a")

        assert first.granted and second.granted

    async def test_metadata_is_stored(self, db_session, make_wallet):
        wallet = await make_wallet()

        claim = await lock_service.acquire_lock(
            db_session, wallet.id, "airtime", "key-a", metadata={"amount": 500}
        )

        lock = await db_session.get(TransactionLock, claim.lock_id)
        assert lock.lock_metadata == {"amount": 500}


class TestRelease:
    """Releasing locks."""

    @pytest.mark.parametrize("status", [LockStatus.COMPLETED, LockStatus.FAILED])
    async def test_release_frees_key_immediately(self, db_session, make_wallet, status):
        """No five-minute wait once a lock is explicitly released."""
        wallet = await make_wallet()
        claim = await lock_service.acquire_lock(db_session, wallet.id, "airtime", "key-a")

        await lock_service.release_lock(db_session, claim.lock_id, status)
        await db_session.commit()

        again = await lock_service.acquire_lock(db_session, wallet.id, "airtime", "key-a")
        assert again.granted is True
        assert again.lock_id != claim.lock_id

    async def test_release_records_terminal_status(self, db_session, make_wallet):
        wallet = await make_wallet()
        claim = await lock_service.acquire_lock(db_session, wallet.id, "airtime", "key-a")

        lock = await lock_service.release_lock(db_session, claim.lock_id, LockStatus.COMPLETED)

        assert lock.status == LockStatus.COMPLETED

    async def test_release_rejects_non_terminal_status(self, db_session, make_wallet):
        wallet = await make_wallet()
        claim = await lock_service.acquire_lock(db_session, wallet.id, "airtime", "key-a")

        with pytest.raises(ValueError):
            await lock_service.release_lock(db_session, claim.lock_id, LockStatus.PROCESSING)

    async def test_release_unknown_lock(self, db_session):
        with pytest.raises(LockNotFoundError):
            await lock_service.release_lock(db_session, uuid.uuid4(), LockStatus.COMPLETED)


class TestExpiryAndCleanup:
    """Expired locks stop blocking; housekeeping collects old rows."""

    async def test_expired_processing_lock_does_not_block(self, db_session, make_wallet):
        """A crashed caller's lock stops blocking once it expires."""
        wallet = await make_wallet()
        db_session.add(_lock_row(wallet.id, "key-a", age=timedelta(minutes=6)))
        await db_session.commit()

        claim = await lock_service.acquire_lock(db_session, wallet.id, "airtime", "key-a")

        assert claim.granted is True

    async def test_cleanup_removes_expired_and_stale(self, db_session, make_wallet):
        wallet = await make_wallet()
        db_session.add_all([
            # expired while processing
            _lock_row(wallet.id, "expired", age=timedelta(minutes=10)),
            # terminal and older than the retention window
            _lock_row(wallet.id, "stale", status=LockStatus.COMPLETED,
                      age=timedelta(hours=2), ttl=timedelta(hours=3)),
            # terminal but recent: kept for the member's lock view
            _lock_row(wallet.id, "recent", status=LockStatus.FAILED),
            # in flight
            _lock_row(wallet.id, "live"),
        ])
        await db_session.commit()

        deleted = await lock_service.cleanup_locks(db_session)
        await db_session.commit()

        assert deleted == 2
        result = await db_session.execute(select(TransactionLock.dedup_key))
        assert sorted(result.scalars().all()) == ["live", "recent"]

    async def test_count_active_locks_ignores_terminal(self, db_session, make_wallet):
        wallet = await make_wallet()
        db_session.add_all([
            _lock_row(wallet.id, "live"),
            _lock_row(wallet.id, "done", status=LockStatus.COMPLETED),
        ])
        await db_session.commit()

        assert await lock_service.count_active_locks(db_session) == 1


class TestUniquenessConstraint:
    """The partial unique index is what actually prevents duplicates."""

    async def test_two_processing_rows_for_one_key_are_refused(self, db_session, make_wallet):
        wallet = await make_wallet()
        db_session.add(_lock_row(wallet.id, "key-a"))
        await db_session.commit()

        db_session.add(_lock_row(wallet.id, "key-a"))
        with pytest.raises(IntegrityError):
            await db_session.commit()
        await db_session.rollback()

    async def test_terminal_rows_do_not_count(self, db_session, make_wallet):
        wallet = await make_wallet()
        db_session.add_all([
            _lock_row(wallet.id, "key-a", status=LockStatus.COMPLETED),
            _lock_row(wallet.id, "key-a", status=LockStatus.FAILED),
            _lock_row(wallet.id, "key-a"),
        ])
        await db_session.commit()


class TestDedupKey:
    """Dedup keys are deterministic within a time bucket."""

    def test_same_inputs_same_bucket_same_key(self, frozen_clock):
        account_id = uuid.uuid4()
        a = lock_service.build_dedup_key(account_id, "airtime", "08031234567", 500_00)
        b = lock_service.build_dedup_key(account_id, "airtime", "08031234567", 500_00)
        assert a == b

    def test_next_bucket_gives_new_key(self, frozen_clock):
        account_id = uuid.uuid4()
        now = lock_service.build_dedup_key(account_id, "airtime", "0803", 500_00)
        later = lock_service.build_dedup_key(
            account_id, "airtime", "0803", 500_00,
            now=frozen_clock + timedelta(seconds=settings.DEDUP_BUCKET_SECONDS),
        )
        assert now != later

    @pytest.mark.parametrize("field", ["account", "operation", "target", "amount"])
    def test_each_component_changes_key(self, frozen_clock, field):
        base = dict(account_id=uuid.UUID(int=1), operation_type="airtime", target="0803", amount_kobo=500)
        changed = dict(base)
        if field == "account":
            changed["account_id"] = uuid.UUID(int=2)
        elif field == "operation":
            changed["operation_type"] = "data"
        elif field == "target":
            changed["target"] = "0805"
        else:
            changed["amount_kobo"] = 501

        assert lock_service.build_dedup_key(**base) != lock_service.build_dedup_key(**changed)

    def test_key_fits_column(self, frozen_clock):
        key = lock_service.build_dedup_key(uuid.uuid4(), "electricity", "x" * 10_000, 10**12)
        assert len(key) <= 255
