"""
Tests for the audit ledger.

These tests verify:
  - Every attempted operation leaves exactly one entry, whatever the outcome
  - Failed entries never show a balance change
  - Successful entries' before/after chain matches the final balance
  - Listing filters by status and operation type, newest first
  - Failure reasons classify into alert types and severities
"""

from datetime import timedelta

import pytest

from wallet_engine import clock
from wallet_engine.models.audit_entry import AuditStatus
from wallet_engine.schemas.details import AirtimePurchaseDetails, GoodsPurchaseDetails
from wallet_engine.services import audit_service, balance_service, lock_service, wallet_service


async def _mixed_history(db_session, wallet_id):
    """Two successes, one limit breach, one insufficient funds, one duplicate."""
    await wallet_service.deposit(db_session, wallet_id, 2_000_00)
    await wallet_service.purchase(db_session, wallet_id, 1_500_00, GoodsPurchaseDetails(order_id="A"))
    await wallet_service.purchase(db_session, wallet_id, 2_000_00, GoodsPurchaseDetails(order_id="B"))
    await wallet_service.purchase(db_session, wallet_id, 1_000_00, GoodsPurchaseDetails(order_id="C"))

    airtime = AirtimePurchaseDetails(phone_number="08031234567", network="MTN")
    key = lock_service.build_dedup_key(wallet_id, "airtime", airtime.dedup_target, 100)
    await lock_service.acquire_lock(db_session, wallet_id, "airtime", key)
    await wallet_service.purchase(db_session, wallet_id, 100, airtime)


class TestCompleteness:

    async def test_one_entry_per_attempt(self, db_session, make_wallet, frozen_clock):
        wallet = await make_wallet(balance_kobo=0)
        await _mixed_history(db_session, wallet.id)

        entries = await audit_service.list_entries(db_session, wallet.id)
        assert len(entries) == 5

        reasons = sorted(e.error_reason or "" for e in entries)
        assert reasons == sorted([
            "",
            "",
            "Daily spending limit exceeded",
            "Insufficient balance",
            "Transaction already in progress",
        ])

    async def test_failed_entries_show_no_balance_change(self, db_session, make_wallet, frozen_clock):
        wallet = await make_wallet(balance_kobo=0)
        await _mixed_history(db_session, wallet.id)

        failed = await audit_service.list_entries(db_session, wallet.id, status=AuditStatus.FAILED)
        assert len(failed) == 3
        for entry in failed:
            assert entry.balance_before_kobo == entry.balance_after_kobo

    async def test_success_entries_reconcile_with_balance(self, db_session, make_wallet, frozen_clock):
        wallet = await make_wallet(balance_kobo=0)
        await _mixed_history(db_session, wallet.id)

        succeeded = await audit_service.list_entries(db_session, wallet.id, status=AuditStatus.SUCCESS)
        net = 0
        for entry in succeeded:
            delta = entry.balance_after_kobo - entry.balance_before_kobo
            assert abs(delta) == entry.amount_kobo
            net += delta

        assert net == await balance_service.read_balance(db_session, wallet.id) == 500_00


class TestListing:

    async def test_filter_by_operation_type(self, db_session, make_wallet, frozen_clock):
        wallet = await make_wallet(balance_kobo=0)
        await _mixed_history(db_session, wallet.id)

        deposits = await audit_service.list_entries(db_session, wallet.id, operation_type="deposit")
        assert [e.operation_type for e in deposits] == ["deposit"]

    async def test_newest_first_with_paging(self, db_session, make_wallet, monkeypatch):
        wallet = await make_wallet(balance_kobo=10_000_00)
        start = clock.utcnow()
        for i in range(3):
            monkeypatch.setattr(clock, "utcnow", lambda i=i: start + timedelta(minutes=i))
            await wallet_service.purchase(
                db_session, wallet.id, 100 + i, GoodsPurchaseDetails(order_id=f"ORD-{i}")
            )

        page = await audit_service.list_entries(db_session, wallet.id, limit=2)
        assert [e.amount_kobo for e in page] == [102, 101]
        rest = await audit_service.list_entries(db_session, wallet.id, limit=2, offset=2)
        assert [e.amount_kobo for e in rest] == [100]

    async def test_admin_listing_spans_wallets(self, db_session, make_wallet):
        first = await make_wallet(balance_kobo=0)
        second = await make_wallet(balance_kobo=0)
        await wallet_service.deposit(db_session, first.id, 100)
        await wallet_service.deposit(db_session, second.id, 200)

        everything = await audit_service.admin_list_entries(db_session)
        only_second = await audit_service.admin_list_entries(db_session, account_id=second.id)

        assert len(everything) == 2
        assert [e.amount_kobo for e in only_second] == [200]

    async def test_member_sees_own_entries_only(self, authenticated_client, service_headers, db_session, make_wallet):
        other = await make_wallet(balance_kobo=0)
        await wallet_service.deposit(db_session, other.id, 999)
        await authenticated_client.post(
            f"/internal/wallets/{authenticated_client.wallet_id}/deposits",
            json={"amount_kobo": 100},
            headers=service_headers,
        )

        resp = await authenticated_client.get("/wallet/audit-log")

        assert resp.status_code == 200
        assert [e["amount_kobo"] for e in resp.json()] == [100]


class TestAlerts:

    @pytest.mark.parametrize("reason, expected", [
        ("Daily spending limit exceeded", ("SPENDING_LIMIT_EXCEEDED", "HIGH")),
        ("Transaction already in progress", ("DUPLICATE_TRANSACTION_ATTEMPT", "MEDIUM")),
        ("Insufficient balance", ("INSUFFICIENT_BALANCE", "LOW")),
        ("Unexpected error: OperationalError", ("OTHER_ERROR", "LOW")),
        (None, ("OTHER_ERROR", "LOW")),
    ])
    def test_classify_alert(self, reason, expected):
        assert audit_service.classify_alert(reason) == expected

    async def test_security_alerts_lists_recent_failures(self, db_session, make_wallet, frozen_clock):
        wallet = await make_wallet(balance_kobo=0)
        await _mixed_history(db_session, wallet.id)

        alerts = await audit_service.get_security_alerts(db_session)

        assert sorted(a["alert_type"] for a in alerts) == [
            "DUPLICATE_TRANSACTION_ATTEMPT",
            "INSUFFICIENT_BALANCE",
            "SPENDING_LIMIT_EXCEEDED",
        ]
        assert all(a["account_id"] == wallet.id for a in alerts)

    async def test_old_failures_are_not_alerts(self, db_session, make_wallet, monkeypatch):
        wallet = await make_wallet(balance_kobo=0)
        two_days_ago = clock.utcnow() - timedelta(days=2)
        monkeypatch.setattr(clock, "utcnow", lambda: two_days_ago)
        await wallet_service.purchase(db_session, wallet.id, 100, GoodsPurchaseDetails(order_id="OLD"))
        monkeypatch.undo()

        assert await audit_service.get_security_alerts(db_session) == []
