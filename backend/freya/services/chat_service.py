"""
Chat Data Services - Where a chat context reads and writes its sessions.

Guests get an in-memory service whose data disappears with the context.
Authenticated users get a service backed by the session repository, with the
remembered active session kept in the key-value store.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..models import ChatSession, Identity, utc_now
from ..storage import KeyValueStore, SessionRepository

logger = logging.getLogger(__name__)

GUEST_ACTIVE_SESSION_KEY = "freya-guest-activeSessionId"


def active_session_key(user_id: str) -> str:
    return f"freya-activeSessionId-{user_id}"


@dataclass
class InitialData:
    """Sessions loaded for a context, plus the remembered active session id."""
    sessions: List[ChatSession] = field(default_factory=list)
    active_session_id: Optional[str] = None


class ChatDataService(ABC):
    """
    Persistence adapter for one identity context.

    The identity is fixed at construction; a different identity always gets
    a different service instance.
    """

    identity: Optional[Identity] = None

    @abstractmethod
    async def load_initial_data(self) -> InitialData:
        pass

    @abstractmethod
    async def create_session(self, session_number: int) -> ChatSession:
        """
        Create a new empty session.

        Args:
            session_number: Size of the current roster; the name uses session_number + 1
        """
        pass

    @abstractmethod
    async def save_session(self, session: ChatSession) -> ChatSession:
        """Persist the session and return the canonical copy."""
        pass

    @abstractmethod
    async def save_active_session_id(self, session_id: Optional[str]) -> None:
        """Remember the active session for the next load; None forgets it."""
        pass


class GuestChatService(ChatDataService):
    """Ephemeral sessions: nothing is ever written to durable storage."""

    def __init__(self):
        self.identity = None
        self._values: Dict[str, str] = {}

    async def load_initial_data(self) -> InitialData:
        return InitialData()

    async def create_session(self, session_number: int) -> ChatSession:
        session = ChatSession(user_id=None, name=f"Guest Chat {session_number + 1}")
        logger.debug(f"Created guest session {session.id}")
        return session

    async def save_session(self, session: ChatSession) -> ChatSession:
        return session.model_copy(update={"last_updated_at": utc_now()})

    async def save_active_session_id(self, session_id: Optional[str]) -> None:
        if session_id is None:
            self._values.pop(GUEST_ACTIVE_SESSION_KEY, None)
        else:
            self._values[GUEST_ACTIVE_SESSION_KEY] = session_id

    @property
    def remembered_session_id(self) -> Optional[str]:
        return self._values.get(GUEST_ACTIVE_SESSION_KEY)


class AuthenticatedChatService(ChatDataService):
    """Durable sessions owned by one user."""

    def __init__(self, identity: Identity, repository: SessionRepository, key_value: KeyValueStore):
        self.identity = identity
        self.repository = repository
        self.key_value = key_value

    @property
    def _active_key(self) -> str:
        return active_session_key(self.identity.id)

    async def load_initial_data(self) -> InitialData:
        sessions = await self.repository.list_sessions(self.identity.id)
        remembered = await self.key_value.get(self._active_key)

        if remembered is not None and not any(s.id == remembered for s in sessions):
            logger.info(f"Remembered session {remembered} no longer exists for user {self.identity.id}")
            remembered = None

        return InitialData(sessions=sessions, active_session_id=remembered)

    async def create_session(self, session_number: int) -> ChatSession:
        return await self.repository.create_session(self.identity.id, session_number)

    async def save_session(self, session: ChatSession) -> ChatSession:
        return await self.repository.save_session(self.identity.id, session)

    async def save_active_session_id(self, session_id: Optional[str]) -> None:
        if session_id is None:
            await self.key_value.remove(self._active_key)
        else:
            await self.key_value.set(self._active_key, session_id)


class ChatServiceFactory:
    """Selects the persistence adapter for an identity."""

    def __init__(self, repository: SessionRepository, key_value: KeyValueStore):
        self.repository = repository
        self.key_value = key_value

    def for_identity(self, identity: Optional[Identity]) -> ChatDataService:
        if identity is None:
            return GuestChatService()
        return AuthenticatedChatService(identity, self.repository, self.key_value)
