"""
Authentication router — signup and login endpoints.

These are the only endpoints that need no credentials.

Endpoints:
  POST /auth/signup  — Register a member, provision their wallet, get a token
  POST /auth/login   — Authenticate and get a token

Plaintext passwords exist only in memory during the request; they are
hashed before any database operation and never logged.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine.database import get_db
from wallet_engine.schemas.auth import (
    SignupResponse,
    TokenResponse,
    UserLoginRequest,
    UserSignupRequest,
)
from wallet_engine.services import auth_service

router = APIRouter()


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new member",
)
async def signup(
    request: UserSignupRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a member and open their wallet with a zero balance.

    - **email**: Must be a valid email format and not already registered
    - **password**: Minimum 8 characters
    - **full_name**: Required
    - **phone**: Optional
    """
    user, wallet, token = await auth_service.signup(
        db=db,
        email=request.email,
        password=request.password,
        full_name=request.full_name,
        phone=request.phone,
    )

    return SignupResponse(
        user_id=user.id,
        wallet_id=wallet.id,
        email=user.email,
        user_type=user.user_type.value,
        token=token,
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and get a token",
)
async def login(
    request: UserLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate with email and password.

    Send the returned token on every other request:

        Authorization: Bearer <token>
    """
    user, token = await auth_service.login(
        db=db,
        email=request.email,
        password=request.password,
    )

    return TokenResponse(token=token)
