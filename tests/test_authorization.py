"""
Tests for authorization boundaries — wallet isolation and role enforcement.

These tests verify four properties:

1. **Wallet isolation**: member endpoints resolve the wallet from the token,
   never from the request, so a member can only read and spend their own
   wallet. There is no URL that names someone else's wallet.

2. **Role enforcement**: MEMBER users cannot reach any /admin/* endpoint,
   and ADMIN users have no wallet to spend from.

3. **Service-only credits**: deposits and refunds need the service key; a
   member token, even for the member's own wallet, is not enough.

4. **Log context**: the wallet id set for a member request is cleared when
   the request ends.
"""

import uuid

import pytest

from wallet_engine.dependencies import get_current_wallet
from wallet_engine.logging import account_id_ctx
from wallet_engine.models.user import User


class TestWalletIsolation:
    """Each member sees only their own wallet."""

    async def test_balance_is_per_member(self, authenticated_client, second_member, service_headers):
        other_headers, other_wallet_id = second_member
        await authenticated_client.post(
            f"/internal/wallets/{other_wallet_id}/deposits",
            json={"amount_kobo": 7_500_00},
            headers=service_headers,
        )

        mine = await authenticated_client.get("/wallet/balance")
        theirs = await authenticated_client.get("/wallet/balance", headers=other_headers)

        assert mine.json()["wallet_id"] == authenticated_client.wallet_id
        assert mine.json()["balance_kobo"] == 0
        assert theirs.json()["wallet_id"] == other_wallet_id
        assert theirs.json()["balance_kobo"] == 7_500_00

    async def test_purchase_spends_own_wallet_only(self, authenticated_client, second_member, service_headers):
        other_headers, other_wallet_id = second_member
        await authenticated_client.post(
            f"/internal/wallets/{other_wallet_id}/deposits",
            json={"amount_kobo": 1_000_00},
            headers=service_headers,
        )

        # The member has nothing; the other wallet's money is out of reach
        resp = await authenticated_client.post(
            "/wallet/purchases",
            json={"amount_kobo": 500_00, "details": {"category": "goods", "order_id": "ORD-1"}},
        )
        assert resp.status_code == 422
        assert resp.json()["error_type"] == "insufficient_funds"

        theirs = await authenticated_client.get("/wallet/balance", headers=other_headers)
        assert theirs.json()["balance_kobo"] == 1_000_00

    async def test_audit_log_is_per_member(self, authenticated_client, second_member, service_headers):
        other_headers, other_wallet_id = second_member
        await authenticated_client.post(
            f"/internal/wallets/{other_wallet_id}/deposits",
            json={"amount_kobo": 100},
            headers=service_headers,
        )

        mine = await authenticated_client.get("/wallet/audit-log")
        theirs = await authenticated_client.get("/wallet/audit-log", headers=other_headers)

        assert mine.json() == []
        assert [e["account_id"] for e in theirs.json()] == [other_wallet_id]

    async def test_locks_are_per_member(self, authenticated_client, second_member, service_headers):
        _, other_wallet_id = second_member
        await authenticated_client.post(
            f"/internal/wallets/{other_wallet_id}/deposits",
            json={"amount_kobo": 100},
            headers=service_headers,
        )

        resp = await authenticated_client.get("/wallet/locks")
        assert resp.json() == []


class TestServiceOnlyCredits:
    """A member cannot credit any wallet, including their own."""

    async def test_member_token_cannot_deposit(self, authenticated_client):
        resp = await authenticated_client.post(
            f"/internal/wallets/{authenticated_client.wallet_id}/deposits",
            json={"amount_kobo": 1_000_000_00},
        )
        assert resp.status_code == 401

        balance = await authenticated_client.get("/wallet/balance")
        assert balance.json()["balance_kobo"] == 0

    async def test_member_token_cannot_refund(self, authenticated_client):
        resp = await authenticated_client.post(
            f"/internal/wallets/{authenticated_client.wallet_id}/refunds",
            json={"amount_kobo": 100, "original_reference": "PRV-1", "reason": "please"},
        )
        assert resp.status_code == 401


class TestNonAdminBlockedFromAdminEndpoints:
    """Regular MEMBER users cannot access any /admin/* endpoint.

    The admin router uses the `require_admin` dependency on every endpoint.
    """

    @pytest.mark.parametrize("method, path", [
        ("GET", "/admin/spending-limits"),
        ("GET", "/admin/audit-log"),
        ("GET", "/admin/security-alerts"),
        ("GET", "/admin/dashboard"),
        ("GET", "/admin/spending-overview"),
        ("POST", "/admin/locks/cleanup"),
        ("GET", f"/admin/wallets/{uuid.uuid4()}"),
    ])
    async def test_member_gets_403(self, authenticated_client, method, path):
        resp = await authenticated_client.request(method, path)
        assert resp.status_code == 403

    async def test_member_cannot_change_limits(self, authenticated_client):
        resp = await authenticated_client.put(
            "/admin/spending-limits/new_account",
            json={"daily_limit_kobo": 1_000_000_00},
        )
        assert resp.status_code == 403

        limit = await authenticated_client.get("/wallet/spending-limit")
        assert limit.json()["daily_limit_kobo"] == 3_000_00

    async def test_member_blocked_even_for_own_wallet(self, authenticated_client):
        resp = await authenticated_client.get(f"/admin/wallets/{authenticated_client.wallet_id}")
        assert resp.status_code == 403

    async def test_unauthenticated_admin_request_is_401(self, client):
        resp = await client.get("/admin/dashboard")
        assert resp.status_code == 401


class TestAdminHasNoWallet:
    """Admins oversee wallets; they don't spend from one."""

    async def test_admin_cannot_purchase(self, admin_client):
        resp = await admin_client.post(
            "/wallet/purchases",
            json={"amount_kobo": 100, "details": {"category": "goods", "order_id": "ORD-1"}},
        )
        assert resp.status_code == 403

    async def test_admin_cannot_read_wallet(self, admin_client):
        resp = await admin_client.get("/wallet/balance")
        assert resp.status_code == 403


class TestWalletLogContext:
    """The wallet id tags log lines only while the member's request runs."""

    async def test_tag_is_cleared_when_the_request_ends(self, db_session, make_wallet):
        wallet = await make_wallet()
        owner = await db_session.get(User, wallet.user_id)
        dependency = get_current_wallet(user=owner, db=db_session)

        resolved = await dependency.__anext__()
        assert resolved.id == wallet.id
        assert account_id_ctx.get() == str(wallet.id)

        await dependency.aclose()
        assert account_id_ctx.get() == ""
