"""
Authentication utilities - JWT token handling, password hashing and the
request dependencies that resolve the caller's identity.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import bcrypt
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..core.errors import AuthError
from ..models import Identity, TokenData

# Bearer token is optional: guests have none, browsers may send the cookie instead
security = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))


def get_password_hash(password: str) -> str:
    """Hash a password."""
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def create_access_token(data: dict, config: Any, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode ("sub" is the user id)
        config: Settings providing secret_key, algorithm and the default lifetime
        expires_delta: Optional expiration time delta

    Returns:
        str: Encoded JWT token with a unique "jti" claim
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=config.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, config.secret_key, algorithm=config.algorithm)


def decode_access_token(token: str, config: Any) -> Optional[TokenData]:
    """
    Decode and verify a JWT access token.

    Returns:
        Optional[TokenData]: Token data if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, config.secret_key, algorithms=[config.algorithm])
    except JWTError:
        return None

    user_id = payload.get("sub")
    if user_id is None:
        return None
    return TokenData(user_id=user_id, email=payload.get("email"), jti=payload.get("jti"))


def get_access_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """Bearer token if present, else the access cookie."""
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(request.app.state.services.settings.access_cookie_name)


async def get_optional_identity(
    request: Request,
    token: Optional[str] = Depends(get_access_token),
) -> Optional[Identity]:
    """
    Dependency resolving the caller to an Identity, or None for a guest.

    An invalid, expired or revoked token is treated as no token.
    """
    if not token:
        return None
    result = await request.app.state.services.identity.initialize(token)
    return result.identity if result.success else None


async def get_current_identity(
    request: Request,
    token: Optional[str] = Depends(get_access_token),
) -> Identity:
    """
    Dependency requiring an authenticated caller.

    Raises:
        HTTPException: 401 if the caller is a guest or the token is invalid
    """
    try:
        return await request.app.state.services.identity.authenticate(token)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
