"""
Pydantic schemas for authentication endpoints (signup and login).

FastAPI validates incoming bodies against these before any service code
runs; a missing field or malformed email is a 422.
"""

import uuid

from pydantic import BaseModel, EmailStr, Field


class UserSignupRequest(BaseModel):
    """Request body for POST /auth/signup."""
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: str = Field(min_length=1, max_length=200)
    phone: str | None = Field(default=None, max_length=20)


class UserLoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    """Response body for successful login — contains the JWT."""
    token: str
    token_type: str = "bearer"


class SignupResponse(BaseModel):
    """Response body for successful signup — user, wallet and JWT."""
    user_id: uuid.UUID
    wallet_id: uuid.UUID
    email: str
    user_type: str
    token: str
    token_type: str = "bearer"
