"""
Key-Value Store - Small durable values such as the remembered active session.
"""

import json
import logging
import re
from typing import Optional

from .interface import StorageInterface
from ..core.errors import PersistenceError

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class KeyValueStore:
    """String values stored one JSON document per key under "kv/"."""

    def __init__(self, storage: StorageInterface, namespace: str = "kv"):
        self.storage = storage
        self.namespace = namespace

    def _path(self, key: str) -> str:
        return f"{self.namespace}/{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    async def get(self, key: str) -> Optional[str]:
        content = await self.storage.load(self._path(key))
        if content is None:
            return None
        try:
            return json.loads(content.decode('utf-8')).get("value")
        except (ValueError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable value for key '{key}': {e}")
            return None

    async def set(self, key: str, value: str) -> None:
        """
        Raises:
            PersistenceError: If the value could not be written
        """
        if not await self.storage.save(self._path(key), json.dumps({"value": value})):
            raise PersistenceError(f"Failed to store value for key '{key}'")

    async def remove(self, key: str) -> None:
        await self.storage.delete(self._path(key))
