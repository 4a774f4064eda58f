"""
User Model - Accounts, credentials and the identity the chat core consumes.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Credentials(BaseModel):
    """E-mail and password, used for both sign-in and sign-up."""
    email: EmailStr
    password: str = Field(..., min_length=6)


class Identity(BaseModel):
    """
    The current authenticated identity.

    A guest is represented by the absence of an Identity (None).
    """
    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str] = None


class TokenData(BaseModel):
    """Token payload data."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    jti: Optional[str] = None


class AuthResult(BaseModel):
    """Outcome of an identity provider operation; failures carry an error description."""
    success: bool
    identity: Optional[Identity] = None
    access_token: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None


class AuthResponse(BaseModel):
    """Body returned by the auth endpoints."""
    user: Optional[Identity] = None
    access_token: Optional[str] = None
    token_type: str = "bearer"
    message: Optional[str] = None
