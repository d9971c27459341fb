"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. The .env file is gitignored; secrets never live in source code.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Money settings are integer kobo (1 naira = 100 kobo), like every amount in
the engine.

Usage:
    from wallet_engine.config import settings
    print(settings.LOCK_TTL_SECONDS)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Wallet Engine.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to sign JWT tokens
      - SERVICE_API_KEY: Shared key for provider/payment-gateway callbacks
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Wallet Engine"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    # SQLite for local use; swap to a postgresql+asyncpg URL for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/wallet.db"

    # --- Authentication ---
    # REQUIRED: no default, must come from the environment
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # REQUIRED: presented as X-API-Key by the provider glue that reports
    # deposits and issues refunds
    SERVICE_API_KEY: str

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    # --- Transaction locks ---
    # A processing lock blocks its dedup key for at most this long
    LOCK_TTL_SECONDS: int = 300
    # Completed/failed locks older than this are garbage-collected
    LOCK_RETENTION_SECONDS: int = 3600
    # Width of the time bucket folded into every dedup key
    DEDUP_BUCKET_SECONDS: int = 60

    # --- Spending limits ---
    # Fallback tier when no active tier matches an account's age
    NEW_ACCOUNT_TIER_NAME: str = "new_account"
    NEW_ACCOUNT_DAILY_LIMIT_KOBO: int = 3_000_00
    ESTABLISHED_ACCOUNT_TIER_NAME: str = "established_account"
    ESTABLISHED_ACCOUNT_DAILY_LIMIT_KOBO: int = 10_000_00
    ESTABLISHED_ACCOUNT_AGE_DAYS: int = 7


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
