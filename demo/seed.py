#!/usr/bin/env python3
"""
Demo seed script — populates the database with sample wallets for demos.

!! NOT FOR PRODUCTION !!
This script creates test users with known passwords and fake purchase
history. It is intended ONLY for local demos and frontend development.

Usage:
    # With the API server running on localhost:8000:
    python demo/seed.py

    # Reset the database and re-seed:
    python demo/seed.py --reset

    # Custom server URL:
    python demo/seed.py --base-url http://localhost:9000

Deposits go through the internal endpoints, so SERVICE_API_KEY must be set
(environment or .env) to the same value the server uses.

Login credentials after seeding:
    ┌──────────────────────────────┬───────────────────┬────────┐
    │ Email                        │ Password          │ Role   │
    ├──────────────────────────────┼───────────────────┼────────┤
    │ admin@walletdemo.com         │ AdminDemo123!     │ ADMIN  │
    │ ada.okafor@example.com       │ AdaDemo123!       │ MEMBER │
    │ tunde.bello@example.com      │ TundeDemo123!     │ MEMBER │
    │ ngozi.eze@example.com        │ NgoziDemo123!     │ MEMBER │
    └──────────────────────────────┴───────────────────┴────────┘
"""

import argparse
import asyncio
import os
import random
import sys
import uuid
from datetime import datetime, timedelta, timezone

import httpx

BASE_URL = "http://localhost:8000"

# ---------------------------------------------------------------------------
# Demo users
# ---------------------------------------------------------------------------

ADMIN = {
    "email": "admin@walletdemo.com",
    "password": "AdminDemo123!",
    "full_name": "Admin User",
}

# age_days backdates the wallet so it lands in the established tier
MEMBERS = [
    {
        "email": "ada.okafor@example.com",
        "password": "AdaDemo123!",
        "full_name": "Ada Okafor",
        "phone": "08031234567",
        "opening_deposit": 25_000_00,
        "age_days": 30,
    },
    {
        "email": "tunde.bello@example.com",
        "password": "TundeDemo123!",
        "full_name": "Tunde Bello",
        "phone": "08029876543",
        "opening_deposit": 8_000_00,
        "age_days": 0,
    },
    {
        "email": "ngozi.eze@example.com",
        "password": "NgoziDemo123!",
        "full_name": "Ngozi Eze",
        "phone": "09051112233",
        "opening_deposit": 1_500_00,
        "age_days": 3,
    },
]

NETWORKS = ["MTN", "GLO", "AIRTEL", "9MOBILE"]
DISCOS = ["IKEDC", "EKEDC", "AEDC", "PHED"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


def kobo_to_naira(kobo: int) -> str:
    return f"₦{kobo / 100:,.2f}"


def service_headers() -> dict:
    from wallet_engine.config import settings
    return {"X-API-Key": settings.SERVICE_API_KEY}


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def signup(client: httpx.AsyncClient, user: dict) -> dict:
    """Sign up a user, return {token, wallet_id}."""
    resp = await client.post(f"{BASE_URL}/auth/signup", json={
        "email": user["email"],
        "password": user["password"],
        "full_name": user["full_name"],
        "phone": user.get("phone"),
    })
    resp.raise_for_status()
    data = resp.json()
    return {"token": data["token"], "wallet_id": data["wallet_id"]}


async def login(client: httpx.AsyncClient, user: dict) -> str:
    resp = await client.post(f"{BASE_URL}/auth/login", json={
        "email": user["email"],
        "password": user["password"],
    })
    resp.raise_for_status()
    return resp.json()["token"]


async def deposit(client: httpx.AsyncClient, wallet_id: str, amount_kobo: int, payer: str) -> dict:
    resp = await client.post(
        f"{BASE_URL}/internal/wallets/{wallet_id}/deposits",
        json={
            "amount_kobo": amount_kobo,
            "details": {"category": "deposit", "channel": "bank_transfer", "payer_name": payer},
            "external_reference": f"DEP-{uuid.uuid4().hex[:12].upper()}",
        },
        headers=service_headers(),
    )
    return resp.json()


async def refund(client: httpx.AsyncClient, wallet_id: str, amount_kobo: int,
                 original_reference: str, category: str) -> dict:
    resp = await client.post(
        f"{BASE_URL}/internal/wallets/{wallet_id}/refunds",
        json={
            "amount_kobo": amount_kobo,
            "original_reference": original_reference,
            "reason": "Provider could not fulfil the order",
            "details": {"category": "refund", "original_category": category},
        },
        headers=service_headers(),
    )
    return resp.json()


def random_purchase(phone: str) -> dict:
    category = random.choice(["airtime", "data", "electricity", "goods"])
    if category == "airtime":
        details = {"category": "airtime", "phone_number": phone, "network": random.choice(NETWORKS)}
        amount = random.choice([100_00, 200_00, 500_00, 1_000_00])
    elif category == "data":
        details = {
            "category": "data",
            "phone_number": phone,
            "network": random.choice(NETWORKS),
            "plan_code": random.choice(["1GB-30D", "2GB-30D", "500MB-7D"]),
        }
        amount = random.choice([300_00, 600_00, 1_200_00])
    elif category == "electricity":
        details = {
            "category": "electricity",
            "meter_number": str(random.randint(10**10, 10**11 - 1)),
            "disco": random.choice(DISCOS),
            "meter_type": "prepaid",
        }
        amount = random.choice([1_000_00, 2_000_00, 5_000_00])
    else:
        details = {"category": "goods", "order_id": f"ORD-{uuid.uuid4().hex[:8].upper()}", "item_count": random.randint(1, 4)}
        amount = random.randint(500_00, 3_000_00)
    return {
        "amount_kobo": amount,
        "details": details,
        "external_reference": f"PRV-{uuid.uuid4().hex[:12].upper()}",
    }


async def purchase(client: httpx.AsyncClient, token: str, body: dict) -> httpx.Response:
    return await client.post(
        f"{BASE_URL}/wallet/purchases",
        json=body,
        headers=auth_header(token),
    )


async def get_summary(client: httpx.AsyncClient, token: str) -> dict:
    resp = await client.get(f"{BASE_URL}/wallet/spending-summary", headers=auth_header(token))
    resp.raise_for_status()
    return resp.json()


# ---------------------------------------------------------------------------
# Direct database updates (no API exposes these)
# ---------------------------------------------------------------------------

async def backdate_wallets(wallet_ages: dict[str, int]) -> None:
    """Move wallet created_at back so older demo wallets get the established tier."""
    from sqlalchemy import update
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
    from wallet_engine.config import settings
    from wallet_engine.models.wallet_account import WalletAccount

    engine = create_async_engine(settings.DATABASE_URL)
    session_factory = async_sessionmaker(engine, class_=AsyncSession)
    now = datetime.now(timezone.utc)

    async with session_factory() as session:
        for wallet_id, age_days in wallet_ages.items():
            if age_days <= 0:
                continue
            await session.execute(
                update(WalletAccount)
                .where(WalletAccount.id == uuid.UUID(wallet_id))
                .values(created_at=now - timedelta(days=age_days, hours=1))
            )
        await session.commit()

    await engine.dispose()


async def promote_to_admin(admin_email: str) -> None:
    """Directly update the user's role to ADMIN in the database.

    There is no admin-promotion endpoint; admin provisioning is an operator
    action, not self-service.
    """
    from sqlalchemy import update
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
    from wallet_engine.config import settings
    from wallet_engine.models.user import User, UserType

    engine = create_async_engine(settings.DATABASE_URL)
    session_factory = async_sessionmaker(engine, class_=AsyncSession)

    async with session_factory() as session:
        await session.execute(
            update(User)
            .where(User.email == admin_email)
            .values(user_type=UserType.ADMIN)
        )
        await session.commit()

    await engine.dispose()


# ---------------------------------------------------------------------------
# Seed logic
# ---------------------------------------------------------------------------

async def seed_member(client: httpx.AsyncClient, member: dict, wallet_id: str, token: str) -> None:
    result = await deposit(client, wallet_id, member["opening_deposit"], member["full_name"])
    log(f"Opening deposit: {kobo_to_naira(member['opening_deposit'])} -> {result.get('balance_after_kobo')}")

    for _ in range(random.randint(3, 6)):
        body = random_purchase(member["phone"])
        resp = await purchase(client, token, body)
        data = resp.json()
        if resp.status_code == 200:
            log(f"{body['details']['category']:<12s} {kobo_to_naira(body['amount_kobo'])}")
            if random.random() < 0.2:
                await refund(client, wallet_id, body["amount_kobo"],
                             body["external_reference"], body["details"]["category"])
                log(f"  refunded {body['external_reference']}")
        else:
            log(f"{body['details']['category']:<12s} {kobo_to_naira(body['amount_kobo'])} denied: {data['error_type']}")

    # A double tap: the same purchase twice at once, one should be a duplicate
    body = random_purchase(member["phone"])
    body["amount_kobo"] = 50_00
    first, second = await asyncio.gather(purchase(client, token, body), purchase(client, token, body))
    log(f"Double tap: {first.status_code} / {second.status_code}")

    summary = await get_summary(client, token)
    log(
        f"Tier {summary['tier_name']}: spent {kobo_to_naira(summary['spent_today_kobo'])} "
        f"of {kobo_to_naira(summary['daily_limit_kobo'])}"
    )


async def seed(base_url: str) -> None:
    global BASE_URL
    BASE_URL = base_url

    print("\n========================================")
    print("  DEMO SEED — NOT FOR PRODUCTION")
    print("========================================\n")

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            health = await client.get(f"{BASE_URL}/health")
            health.raise_for_status()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            print(f"  ERROR: Cannot connect to {BASE_URL}")
            print("  Start the server first: uvicorn wallet_engine.main:app --reload\n")
            sys.exit(1)

        print("Creating admin user...")
        await signup(client, ADMIN)
        await promote_to_admin(ADMIN["email"])
        log(f"Admin: {ADMIN['email']} / {ADMIN['password']}")

        print("\nCreating members...")
        created = []
        for member in MEMBERS:
            account = await signup(client, member)
            created.append((member, account))
            log(f"{member['full_name']}: wallet {account['wallet_id']}")

        await backdate_wallets({account["wallet_id"]: member["age_days"] for member, account in created})

        for member, account in created:
            print(f"\nSeeding {member['full_name']} (age {member['age_days']} days)...")
            await seed_member(client, member, account["wallet_id"], account["token"])

    print("\n========================================")
    print("  SEED COMPLETE — Login Credentials")
    print("========================================")
    print(f"\n  {'Email':<30s} {'Password':<20s} {'Role'}")
    print(f"  {'─' * 30} {'─' * 20} {'─' * 6}")
    print(f"  {ADMIN['email']:<30s} {ADMIN['password']:<20s} ADMIN")
    for m in MEMBERS:
        print(f"  {m['email']:<30s} {m['password']:<20s} MEMBER")
    print()


def reset_database() -> None:
    """Delete the SQLite database file so the server recreates it on restart."""
    db_path = os.path.join(os.path.dirname(__file__), "..", "data", "wallet.db")
    db_path = os.path.normpath(db_path)

    if os.path.exists(db_path):
        os.remove(db_path)
        print(f"\n  Deleted {db_path}")
        print("  Restart the server to recreate empty tables.\n")
    else:
        print(f"\n  No database found at {db_path}\n")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Demo seed script — NOT FOR PRODUCTION",
        epilog="Creates sample users, wallets, deposits and purchases for demos.",
    )
    parser.add_argument(
        "--base-url", default="http://localhost:8000",
        help="Base URL of the running API (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Delete the database file and exit (restart server to recreate)",
    )
    args = parser.parse_args()

    if args.reset:
        reset_database()
        return

    await seed(args.base_url)


if __name__ == "__main__":
    asyncio.run(main())
