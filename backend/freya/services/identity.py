"""
Identity Provider - E-mail and password accounts with JWT access tokens.

Every operation returns an AuthResult; expected failures (wrong password,
duplicate account, bad token) are reported there and never raised.
"""

import logging
import uuid
from typing import Any, Dict, Optional, Set

from ..core.errors import AuthError, PersistenceError
from ..models import AuthResult, Credentials, Identity
from ..storage import UserStorage
from ..utils.auth import create_access_token, decode_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)


class IdentityProvider:
    """Accounts live in UserStorage; revoked token ids are kept for the process lifetime."""

    def __init__(self, users: UserStorage, config: Any):
        self.users = users
        self.config = config
        self._revoked: Set[str] = set()

    def _issue(self, user: Dict) -> str:
        return create_access_token({"sub": user["user_id"], "email": user["email"]}, self.config)

    @staticmethod
    def _identity(user: Dict) -> Identity:
        return Identity(id=user["user_id"], email=user.get("email"))

    async def initialize(self, token: Optional[str]) -> AuthResult:
        """
        Resolve the identity behind a token.

        No token is a successful guest result (identity None).
        """
        if not token:
            return AuthResult(success=True)

        token_data = decode_access_token(token, self.config)
        if token_data is None:
            return AuthResult(success=False, error="Invalid or expired token")
        if token_data.jti in self._revoked:
            return AuthResult(success=False, error="Token has been revoked")

        user = await self.users.get_user(token_data.user_id)
        if user is None or not user.get("is_active", True):
            return AuthResult(success=False, error="User not found")

        return AuthResult(success=True, identity=self._identity(user), access_token=token)

    async def sign_in(self, credentials: Credentials) -> AuthResult:
        user = await self.users.get_user_by_email(credentials.email)
        if user is None or not verify_password(credentials.password, user["hashed_password"]):
            logger.info(f"Failed sign-in for {credentials.email}")
            return AuthResult(success=False, error="Invalid login credentials")

        logger.info(f"User {user['user_id']} signed in")
        return AuthResult(
            success=True,
            identity=self._identity(user),
            access_token=self._issue(user),
            message="Signed in successfully",
        )

    async def sign_up(self, credentials: Credentials) -> AuthResult:
        if await self.users.get_user_by_email(credentials.email) is not None:
            return AuthResult(success=False, error="User already registered")

        try:
            user = await self.users.create_user(
                user_id=str(uuid.uuid4()),
                email=credentials.email,
                hashed_password=get_password_hash(credentials.password),
            )
        except PersistenceError as e:
            logger.error(f"Sign-up for {credentials.email} failed: {e}", exc_info=True)
            return AuthResult(success=False, error="Could not create account. Please try again.")

        logger.info(f"User {user['user_id']} signed up")
        return AuthResult(
            success=True,
            identity=self._identity(user),
            access_token=self._issue(user),
            message="Account created successfully",
        )

    async def sign_out(self, token: Optional[str]) -> AuthResult:
        token_data = decode_access_token(token, self.config) if token else None
        if token_data is not None and token_data.jti:
            self._revoked.add(token_data.jti)
            logger.info(f"User {token_data.user_id} signed out")
        return AuthResult(success=True, message="Signed out")

    async def authenticate(self, token: Optional[str]) -> Identity:
        """
        Resolve a token that must belong to a signed-in user.

        Raises:
            AuthError: If the token is missing, invalid, revoked or orphaned
        """
        if not token:
            raise AuthError("Not authenticated")
        result = await self.initialize(token)
        if not result.success or result.identity is None:
            raise AuthError(result.error or "Not authenticated")
        return result.identity
