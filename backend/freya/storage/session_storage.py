"""
Session Storage - Durable chat sessions for authenticated users.

Each session is one JSON document holding its metadata and its full message
list, stored at users/{user_id}/sessions/{session_id}.json. Writing the
whole document at once means a reader never observes a session whose
messages are partially replaced.
"""

import asyncio
import logging
import weakref
from typing import List, Optional

from pydantic import ValidationError

from .interface import StorageInterface
from ..core.errors import PersistenceError, SessionNotFoundError, SessionOwnershipError
from ..models import ChatSession, utc_now

logger = logging.getLogger(__name__)


class SessionRepository:
    """
    CRUD over session documents, scoped by owner.

    All mutations of one session are serialized with a per-session lock.
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.users_dir = "users"
        # A lock lives only while some save holds or awaits it
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _sessions_dir(self, user_id: str) -> str:
        return f"{self.users_dir}/{user_id}/sessions"

    def _session_path(self, user_id: str, session_id: str) -> str:
        return f"{self._sessions_dir(user_id)}/{session_id}.json"

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    async def _read(self, path: str) -> Optional[ChatSession]:
        content = await self.storage.load(path)
        if content is None:
            return None
        try:
            return ChatSession.model_validate_json(content)
        except ValidationError as e:
            logger.warning(f"Skipping unreadable session document {path}: {e.error_count()} error(s)")
            return None

    async def _write(self, user_id: str, session: ChatSession) -> None:
        path = self._session_path(user_id, session.id)
        if not await self.storage.save(path, session.model_dump_json(indent=2)):
            raise PersistenceError(f"Failed to write session {session.id}")

    async def list_sessions(self, user_id: str) -> List[ChatSession]:
        """
        All sessions owned by the user, most recently updated first.
        """
        files = await self.storage.list(self._sessions_dir(user_id), pattern="*.json")
        sessions = []
        for file_path in files:
            session = await self._read(file_path)
            if session is not None and session.user_id == user_id:
                sessions.append(session)

        sessions.sort(key=lambda s: s.last_updated_at, reverse=True)
        return sessions

    async def get_session(self, user_id: str, session_id: str) -> Optional[ChatSession]:
        session = await self._read(self._session_path(user_id, session_id))
        if session is None or session.user_id != user_id:
            return None
        return session

    async def create_session(self, user_id: str, session_number: int) -> ChatSession:
        """
        Create an empty session named after its ordinal.

        Args:
            user_id: Owner
            session_number: Number of sessions the caller already has

        Returns:
            ChatSession: The stored record, with server-assigned timestamps

        Raises:
            PersistenceError: If the document could not be written
        """
        now = utc_now()
        session = ChatSession(
            user_id=user_id,
            name=f"Chat {session_number + 1}",
            created_at=now,
            last_updated_at=now,
        )
        async with self._lock_for(session.id):
            await self._write(user_id, session)

        logger.info(f"Created session {session.id} ('{session.name}') for user {user_id}")
        return session

    async def save_session(self, user_id: str, session: ChatSession) -> ChatSession:
        """
        Overwrite a session's metadata and replace its message set.

        Messages are matched by id; the stored list becomes exactly the
        incoming list, in the incoming order.

        Returns:
            ChatSession: The canonical stored record with the server's last_updated_at

        Raises:
            SessionOwnershipError: If the session belongs to someone else
            SessionNotFoundError: If no such session exists for the user
            PersistenceError: If the document could not be written
        """
        if session.user_id != user_id:
            raise SessionOwnershipError(
                f"Session {session.id} is not owned by user {user_id}"
            )

        async with self._lock_for(session.id):
            stored = await self.get_session(user_id, session.id)
            if stored is None:
                raise SessionNotFoundError(session.id)

            stored_ids = {m.id for m in stored.messages}
            updated = sum(1 for m in session.messages if m.id in stored_ids)

            canonical = stored.model_copy(update={
                "name": session.name,
                "messages": list(session.messages),
                "last_updated_at": utc_now(),
            })
            await self._write(user_id, canonical)

        logger.debug(
            f"Saved session {session.id}: {len(canonical.messages)} message(s), "
            f"{updated} updated, {len(canonical.messages) - updated} new"
        )
        return canonical

