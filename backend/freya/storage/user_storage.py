"""
User Storage - Accounts for the identity provider, one JSON file per user.
"""

import json
import logging
from typing import Optional, Dict
from datetime import datetime, timezone

from .interface import StorageInterface
from ..core.errors import PersistenceError

logger = logging.getLogger(__name__)


class UserStorage:
    """
    Manages persistent storage of user accounts.
    Users live at users/{user_id}.json; users/email_index.json maps
    normalized e-mail addresses to user ids.
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.users_dir = "users"
        self._email_index_path = f"{self.users_dir}/email_index.json"

    @staticmethod
    def normalize_email(email: str) -> str:
        return email.strip().lower()

    async def _load_email_index(self) -> Dict[str, str]:
        content = await self.storage.load(self._email_index_path)
        if content is None:
            return {}
        try:
            return json.loads(content.decode('utf-8'))
        except ValueError as e:
            logger.error(f"E-mail index is unreadable: {e}")
            return {}

    async def get_user(self, user_id: str) -> Optional[Dict]:
        """
        Get user by user_id.

        Returns:
            Optional[Dict]: User data or None if not found
        """
        content = await self.storage.load(f"{self.users_dir}/{user_id}.json")
        if content is None:
            return None

        try:
            user_data = json.loads(content.decode('utf-8'))
            for field in ('created_at', 'updated_at'):
                if field in user_data:
                    user_data[field] = datetime.fromisoformat(user_data[field])
            return user_data
        except ValueError as e:
            logger.error(f"Error loading user {user_id}: {e}")
            return None

    async def get_user_by_email(self, email: str) -> Optional[Dict]:
        index = await self._load_email_index()
        user_id = index.get(self.normalize_email(email))
        if user_id is None:
            return None
        return await self.get_user(user_id)

    async def create_user(self, user_id: str, email: str, hashed_password: str) -> Dict:
        """
        Create a new user and index it by e-mail.

        Raises:
            PersistenceError: If the account could not be written
        """
        now = datetime.now(timezone.utc)
        email = self.normalize_email(email)

        user_data = {
            "user_id": user_id,
            "email": email,
            "hashed_password": hashed_password,
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
            "is_active": True,
        }

        saved = await self.storage.save(
            f"{self.users_dir}/{user_id}.json", json.dumps(user_data, indent=2)
        )
        if not saved:
            raise PersistenceError(f"Failed to store user {user_id}")

        index = await self._load_email_index()
        index[email] = user_id
        if not await self.storage.save(self._email_index_path, json.dumps(index, indent=2)):
            raise PersistenceError("Failed to update e-mail index")

        user_data['created_at'] = now
        user_data['updated_at'] = now
        return user_data
