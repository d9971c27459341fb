"""
Test fixtures for the Wallet Engine test suite.

  - db_engine / db_session: Fresh in-memory SQLite database for each test,
    with the default spending limit tiers seeded
  - client: Async HTTP test client (unauthenticated)
  - authenticated_client: Test client with a registered MEMBER and JWT
  - admin_client: Test client with a registered ADMIN and JWT
  - second_member: Headers and wallet id of another MEMBER
  - service_headers: X-API-Key header for the internal endpoints
  - make_wallet: Insert a wallet directly, with a chosen balance and age
  - frozen_clock: Pin the engine's clock so dedup buckets can't roll over
  - file_session_factory: File-backed SQLite with BEGIN IMMEDIATE, for
    tests that run operations concurrently

In-memory SQLite shares one connection across sessions, so it can only
host sequential work. Concurrency tests use the file database, where each
session has its own connection and writers queue on the database lock.
"""

import itertools
import os
import uuid
from datetime import datetime, timedelta, timezone

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("SERVICE_API_KEY", "test-service-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from wallet_engine import clock
from wallet_engine.config import settings
from wallet_engine.database import Base, enable_sqlite_write_locking, get_db
from wallet_engine.exceptions import WalletEngineError
from wallet_engine.main import app
from wallet_engine.models.user import User, UserType
from wallet_engine.models.wallet_account import WalletAccount
from wallet_engine.services import spending_limit_service


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture(autouse=True)
def reset_tier_cache():
    """The tier cache is process-wide; never let it leak between tests."""
    spending_limit_service.tier_cache.invalidate()
    yield
    spending_limit_service.tier_cache.invalidate()


async def _create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        await spending_limit_service.seed_default_tiers(session)
        await session.commit()


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables and default tiers."""
    engine = create_async_engine(TEST_DATABASE_URL)
    await _create_schema(engine)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Provide an async session bound to the test engine."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_engine):
    """
    Async HTTP test client with the test database injected.

    The override mirrors get_db: commit on success and on domain errors,
    roll back on anything else.
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except WalletEngineError:
                await session.commit()
                raise
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def authenticated_client(client):
    """
    Test client with a registered member and JWT token.

    Signs up through the real endpoint, which also provisions the wallet.
    The wallet id is available as client.wallet_id.
    """
    response = await client.post(
        "/auth/signup",
        json={
            "email": "testuser@example.com",
            "password": "SecurePass123!",
            "full_name": "Test User",
        },
    )
    assert response.status_code == 201, f"Signup failed: {response.text}"
    body = response.json()
    client.headers["Authorization"] = f"Bearer {body['token']}"
    client.wallet_id = body["wallet_id"]
    return client


@pytest_asyncio.fixture
async def admin_client(client, db_engine):
    """
    Test client with a registered ADMIN and JWT token.

    Signs up normally, then updates user_type directly in the database:
    admins are provisioned by an operator, never self-service.
    """
    signup_response = await client.post(
        "/auth/signup",
        json={
            "email": "admin@example.com",
            "password": "AdminPass123!",
            "full_name": "Admin User",
        },
    )
    assert signup_response.status_code == 201
    user_id = uuid.UUID(signup_response.json()["user_id"])

    async_session = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False,
    )
    async with async_session() as session:
        await session.execute(
            update(User)
            .where(User.id == user_id)
            .values(user_type=UserType.ADMIN)
        )
        await session.commit()

    login_response = await client.post(
        "/auth/login",
        json={"email": "admin@example.com", "password": "AdminPass123!"},
    )
    client.headers["Authorization"] = f"Bearer {login_response.json()['token']}"
    return client


@pytest_asyncio.fixture
async def second_member(client):
    """
    A second MEMBER for cross-user tests.

    Returns (headers, wallet_id) instead of mutating the shared client, so
    it can be used alongside authenticated_client.
    """
    response = await client.post(
        "/auth/signup",
        json={
            "email": "seconduser@example.com",
            "password": "SecurePass456!",
            "full_name": "Second User",
        },
    )
    assert response.status_code == 201
    body = response.json()
    return {"Authorization": f"Bearer {body['token']}"}, body["wallet_id"]


@pytest.fixture
def service_headers():
    return {"X-API-Key": settings.SERVICE_API_KEY}


@pytest.fixture
def frozen_clock(monkeypatch):
    """Pin clock.utcnow() to the moment the fixture runs."""
    fixed = datetime.now(timezone.utc).replace(second=10, microsecond=0)
    monkeypatch.setattr(clock, "utcnow", lambda: fixed)
    return fixed


async def insert_wallet(
    session: AsyncSession,
    balance_kobo: int = 0,
    age_days: float = 0,
    email: str | None = None,
) -> WalletAccount:
    """Insert a member and wallet directly, bypassing signup."""
    user = User(
        email=email or f"member-{uuid.uuid4().hex[:8]}@example.com",
        hashed_password="not-a-real-hash",
        full_name="Wallet Owner",
        user_type=UserType.MEMBER,
    )
    session.add(user)
    await session.flush()

    wallet = WalletAccount(
        user_id=user.id,
        balance_kobo=balance_kobo,
        created_at=clock.utcnow() - timedelta(days=age_days),
    )
    session.add(wallet)
    await session.commit()
    return wallet


@pytest.fixture
def make_wallet(db_session):
    """Factory: await make_wallet(balance_kobo=..., age_days=...)."""
    counter = itertools.count()

    async def _make(balance_kobo: int = 0, age_days: float = 0) -> WalletAccount:
        return await insert_wallet(
            db_session,
            balance_kobo=balance_kobo,
            age_days=age_days,
            email=f"member{next(counter)}@example.com",
        )

    return _make


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """A file-backed SQLite database that serialises writers like row locks would."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'wallet.db'}")
    enable_sqlite_write_locking(engine)
    await _create_schema(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
