"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors without importing HTTP
concepts; the handlers registered here translate them into consistent JSON
responses: {"detail": "...", "error_type": "..."}.

Policy denials (duplicate submission, daily limit exceeded, insufficient
funds) are NOT exceptions. The wallet service returns them as structured
results so callers can render a specific message, and the router decides the
status code. Exceptions are reserved for precondition violations and faults.

Exception hierarchy:
    WalletEngineError (base)
    ├── AccountNotFoundError     — requested wallet doesn't exist
    ├── InvalidAmountError       — zero or negative amount
    ├── UnauthorizedAccessError  — caller lacks the capability
    ├── TierNotFoundError        — unknown spending limit tier
    ├── LockNotFoundError        — releasing a lock that doesn't exist
    ├── TransactionFailedError   — infrastructure fault, caller may retry
    ├── DuplicateEmailError      — signup with a registered email
    └── InvalidCredentialsError  — bad login
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class WalletEngineError(Exception):
    """Base exception for all Wallet Engine domain errors."""

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Precondition violations
# ---------------------------------------------------------------------------

class AccountNotFoundError(WalletEngineError):
    """Raised when a requested wallet account does not exist."""

    def __init__(self, account_id: uuid.UUID):
        self.account_id = account_id
        super().__init__(f"Wallet {account_id} not found")


class InvalidAmountError(WalletEngineError):
    """Raised before any lock is taken when an amount is not strictly positive."""

    def __init__(self, amount_kobo: int):
        self.amount_kobo = amount_kobo
        super().__init__(f"Amount must be positive, got {amount_kobo} kobo")


class UnauthorizedAccessError(WalletEngineError):
    """Raised when a user attempts an action they lack the capability for."""

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


class TierNotFoundError(WalletEngineError):
    """Raised when an administrative update names a tier that isn't configured."""

    def __init__(self, tier_name: str):
        self.tier_name = tier_name
        super().__init__(f"Spending limit tier '{tier_name}' not found")


class LockNotFoundError(WalletEngineError):
    """Raised when releasing a transaction lock that doesn't exist."""

    def __init__(self, lock_id: uuid.UUID):
        self.lock_id = lock_id
        super().__init__(f"Transaction lock {lock_id} not found")


class DuplicateEmailError(WalletEngineError):
    """Raised when attempting to register with an email that's already in use."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class InvalidCredentialsError(WalletEngineError):
    """Raised when login credentials are incorrect."""

    def __init__(self):
        super().__init__("Invalid email or password")


# ---------------------------------------------------------------------------
# Infrastructure faults
# ---------------------------------------------------------------------------

class TransactionFailedError(WalletEngineError):
    """
    Raised when a wallet operation hits an unexpected fault.

    The unit of work has been rolled back and a failed audit entry written
    (best effort). Retrying with the same request is safe: the dedup lock
    was released as failed.

    Attributes:
        operation_type: purchase, deposit or refund.
        account_id: The wallet the operation targeted.
    """

    def __init__(self, operation_type: str, account_id: uuid.UUID):
        self.operation_type = operation_type
        self.account_id = account_id
        super().__init__("Transaction could not be completed, please try again")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(AccountNotFoundError)
    async def account_not_found_handler(
        request: Request, exc: AccountNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"detail": exc.detail, "error_type": "account_not_found"},
        )

    @app.exception_handler(InvalidAmountError)
    async def invalid_amount_handler(
        request: Request, exc: InvalidAmountError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": exc.detail, "error_type": "invalid_amount"},
        )

    @app.exception_handler(UnauthorizedAccessError)
    async def unauthorized_access_handler(
        request: Request, exc: UnauthorizedAccessError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=403,
            content={"detail": exc.detail, "error_type": "unauthorized_access"},
        )

    @app.exception_handler(TierNotFoundError)
    async def tier_not_found_handler(
        request: Request, exc: TierNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"detail": exc.detail, "error_type": "tier_not_found"},
        )

    @app.exception_handler(LockNotFoundError)
    async def lock_not_found_handler(
        request: Request, exc: LockNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"detail": exc.detail, "error_type": "lock_not_found"},
        )

    @app.exception_handler(TransactionFailedError)
    async def transaction_failed_handler(
        request: Request, exc: TransactionFailedError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=503,  # transient, the client may retry
            content={"detail": exc.detail, "error_type": "transaction_failed"},
        )

    @app.exception_handler(DuplicateEmailError)
    async def duplicate_email_handler(
        request: Request, exc: DuplicateEmailError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": exc.detail, "error_type": "duplicate_email"},
        )

    @app.exception_handler(InvalidCredentialsError)
    async def invalid_credentials_handler(
        request: Request, exc: InvalidCredentialsError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={"detail": exc.detail, "error_type": "invalid_credentials"},
        )
