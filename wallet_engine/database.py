"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - get_db(): FastAPI dependency that provides a session per request
  - enable_sqlite_write_locking(): makes every SQLite transaction take the
    write lock up front

Row locking:
  The wallet services lock the balance row with SELECT ... FOR UPDATE.
  PostgreSQL honours that directly. SQLite ignores FOR UPDATE, so file-backed
  SQLite databases open every transaction with BEGIN IMMEDIATE instead: one
  writer at a time, the rest wait on the busy timeout. That is coarser than a
  row lock but gives the same guarantee for a single account.

Session lifecycle:
  Each API request gets its own session via get_db(). The wallet services
  commit their own units of work; get_db() commits whatever is left on
  success and rolls back on an unexpected exception.
"""

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from wallet_engine.config import settings
from wallet_engine.exceptions import WalletEngineError


def enable_sqlite_write_locking(async_engine: AsyncEngine) -> None:
    """
    Emit BEGIN IMMEDIATE for every transaction on a SQLite engine.

    The driver's own transaction handling is switched off so SQLAlchemy
    controls BEGIN. Only use this on file databases: an in-memory database
    shares one connection across sessions and cannot nest BEGINs.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _is_sqlite_file(url: str) -> bool:
    parsed = make_url(url)
    return parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:")


# Create the async engine.
# echo=True in debug mode logs all SQL statements.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)

if _is_sqlite_file(settings.DATABASE_URL):
    enable_sqlite_write_locking(engine)

# expire_on_commit=False keeps ORM objects readable after the wallet
# services commit mid-request.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/wallet")
        async def get_wallet(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except WalletEngineError:
            # Domain errors: keep anything already flushed (e.g. audit rows)
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
