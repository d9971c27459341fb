"""
FastAPI dependencies for authentication and authorization.

  get_current_user (JWT -> User)
      ├── get_current_wallet (User -> WalletAccount)   [MEMBER role]
      └── require_admin (User -> User)                  [ADMIN role]

  require_service_key (X-API-Key header)                [provider glue]

Role-based access control:
  - MEMBER: owns exactly one wallet and can only act on it. Every member
    endpoint resolves the wallet from the token, never from the URL, so a
    member cannot address someone else's wallet.
  - ADMIN: reads organisation-wide data and edits spending limit tiers, but
    has no wallet and cannot purchase.
  - Service callers: deposits and refunds arrive from the payment gateway
    and provider integrations, authenticated by the shared service key.
"""

import uuid

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine.database import get_db
from wallet_engine.logging import account_id_ctx
from wallet_engine.models.user import User, UserType
from wallet_engine.models.wallet_account import WalletAccount
from wallet_engine.security import decode_access_token, service_key_matches


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT token, then return the corresponding User.

    Raises:
        HTTPException 401: If the token is invalid or the user doesn't exist.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        user_id = uuid.UUID(user_id_str)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user


async def get_current_wallet(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    The authenticated member's wallet.

    Tags the request's log lines with the wallet id for as long as the
    request runs.

    Raises:
        HTTPException 403: If the user is an admin.
        HTTPException 404: If the user has no wallet.
    """
    if user.user_type == UserType.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin accounts have no wallet. Use /admin/* endpoints.",
        )

    result = await db.execute(
        select(WalletAccount).where(WalletAccount.user_id == user.id)
    )
    wallet = result.scalar_one_or_none()

    if wallet is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Wallet not found",
        )

    token = account_id_ctx.set(str(wallet.id))
    try:
        yield wallet
    finally:
        account_id_ctx.reset(token)


async def require_admin(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require the authenticated user to have the ADMIN role.

    Raises:
        HTTPException 403: If the user is not an admin.
    """
    if user.user_type != UserType.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


async def require_service_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """
    Authenticate provider/payment-gateway callers.

    Raises:
        HTTPException 401: missing or wrong X-API-Key.
    """
    if not service_key_matches(x_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "API-Key"},
        )
