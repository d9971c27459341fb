"""
Security utilities: password hashing, JWT tokens, service key checks.

This module centralizes the cryptographic operations so they're easy to
audit and update:

1. PASSWORD HASHING (Argon2)
   - Passwords are never stored in plaintext
   - Argon2id is memory-hard and time-hard, which makes GPU cracking
     expensive
   - passlib's CryptContext handles hashing and future scheme migration

2. JWT TOKENS
   - After login, the user receives a signed JWT carrying their user ID
   - Signed with SECRET_KEY using HS256, expires after
     ACCESS_TOKEN_EXPIRE_MINUTES

3. SERVICE KEY
   - Deposits and refunds are reported by the payment/provider glue, not by
     wallet owners. Those callers present SERVICE_API_KEY in X-API-Key.
"""

import hmac
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from wallet_engine.config import settings


# ---------------------------------------------------------------------------
# 1. Password Hashing (Argon2)
# ---------------------------------------------------------------------------

# deprecated="auto": hashes made with a retired scheme still verify, new
# passwords use the active one
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """
    Hash a plaintext password using Argon2id.

    Returns:
        An Argon2 hash string (e.g., "$argon2id$v=19$m=65536,t=3,p=4$...").
    """
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a stored Argon2 hash."""
    return pwd_context.verify(plain_password, hashed_password)


# ---------------------------------------------------------------------------
# 2. JWT Tokens
# ---------------------------------------------------------------------------


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Create a signed JWT access token.

    Args:
        data: Claims to encode (must include "sub", the user ID as string).
        expires_delta: Optional custom lifetime. Defaults to
                       ACCESS_TOKEN_EXPIRE_MINUTES from settings.
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify a JWT access token.

    Raises:
        JWTError: If the token is expired, tampered with, or invalid.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


# ---------------------------------------------------------------------------
# 3. Service key
# ---------------------------------------------------------------------------


def service_key_matches(presented: str | None) -> bool:
    """Constant-time comparison against SERVICE_API_KEY."""
    if not presented:
        return False
    return hmac.compare_digest(presented.encode(), settings.SERVICE_API_KEY.encode())
