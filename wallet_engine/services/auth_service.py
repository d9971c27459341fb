"""
Authentication service — signup and login business logic.

Signup flow:
  1. Check if email is already registered
  2. Hash the password with Argon2id
  3. Create User + WalletAccount (balance 0) in a single transaction
  4. Return a JWT token so the user is immediately logged in

The wallet's created_at is the clock its spending tier is measured from, so
it is set here, once, and never changed.

Login flow:
  1. Look up user by email
  2. Verify password against stored hash
  3. Return a JWT token

Login returns the same error for "wrong password" and "email not found" to
prevent user enumeration.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine.exceptions import DuplicateEmailError, InvalidCredentialsError
from wallet_engine.logging import logger
from wallet_engine.models.user import User, UserType
from wallet_engine.models.wallet_account import WalletAccount
from wallet_engine.security import create_access_token, hash_password, verify_password


async def signup(
    db: AsyncSession,
    email: str,
    password: str,
    full_name: str,
    phone: str | None = None,
) -> tuple[User, WalletAccount, str]:
    """
    Register a new member and provision their wallet.

    Returns:
        Tuple of (User, WalletAccount, JWT token string).

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise DuplicateEmailError(email)

    user = User(
        email=email,
        hashed_password=hash_password(password),
        full_name=full_name,
        phone=phone,
        user_type=UserType.MEMBER,
    )
    db.add(user)
    # Flush to get the user.id assigned (needed for the FK below)
    await db.flush()

    wallet = WalletAccount(user_id=user.id, balance_kobo=0)
    db.add(wallet)
    await db.flush()

    logger.info("wallet provisioned wallet_id=%s", wallet.id)
    token = create_access_token(data={"sub": str(user.id)})
    return user, wallet, token


async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Authenticate a user and return a JWT token.

    Raises:
        InvalidCredentialsError: If email doesn't exist or password is wrong.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    # Same error for every case, so emails cannot be enumerated
    if not user:
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    if not user.is_active:
        raise InvalidCredentialsError()

    token = create_access_token(data={"sub": str(user.id)})
    return user, token
