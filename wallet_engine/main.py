"""
FastAPI application and entry point.

  1. Lifespan manager — logging, table creation, default tier seeding
  2. CORS middleware — allows frontend origins to make cross-origin requests
  3. Request ID middleware — correlates every log line of one request
  4. Exception handlers — maps domain errors to HTTP responses
  5. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn wallet_engine.main:app --reload
"""

import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import make_url

from wallet_engine import models  # noqa: F401  (registers every table on Base.metadata)
from wallet_engine.config import settings
from wallet_engine.database import AsyncSessionLocal, Base, engine
from wallet_engine.exceptions import register_exception_handlers
from wallet_engine.logging import configure_logging, logger, request_id_ctx
from wallet_engine.routers import admin, auth, internal, wallet
from wallet_engine.services import spending_limit_service


def _ensure_sqlite_directory(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      Configures JSON logging, creates any missing tables and seeds the
      default spending limit tiers. In production, use migrations for the
      schema; the tier seed only inserts tiers that don't exist yet.

    Shutdown:
      Disposes of the database engine, closing all connections cleanly.
    """
    # --- Startup ---
    configure_logging()
    _ensure_sqlite_directory(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncSessionLocal() as session:
        created = await spending_limit_service.seed_default_tiers(session)
        await session.commit()
    logger.info("startup complete tiers_seeded=%s", len(created))
    yield
    # --- Shutdown ---
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Wallet transaction engine: purchases, deposits, refunds, "
                "duplicate protection and tiered daily spending limits",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag the request's log lines with X-Request-ID (generated if absent)."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    token = request_id_ctx.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(wallet.router, prefix="/wallet", tags=["Wallet"])
app.include_router(internal.router, prefix="/internal", tags=["Internal"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe for load balancers and orchestrators."""
    return {"status": "ok", "version": settings.APP_VERSION}
