"""
Tests for the file-backed stores.
"""

import asyncio
import gc
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from freya.core.errors import PersistenceError, SessionNotFoundError, SessionOwnershipError
from freya.models import Message


class TestLocalStorage:
    """Tests for LocalStorage."""

    @pytest.mark.asyncio
    async def test_save_load_delete(self, storage):
        assert await storage.save("a/b.json", '{"x": 1}') is True
        assert await storage.exists("a/b.json") is True
        assert await storage.load("a/b.json") == b'{"x": 1}'
        assert await storage.list("a", pattern="*.json") == ["a/b.json"]
        assert await storage.delete("a/b.json") is True
        assert await storage.load("a/b.json") is None

    @pytest.mark.asyncio
    async def test_path_traversal_rejected(self, storage):
        assert await storage.save("../escape.json", "x") is False
        assert await storage.exists("../escape.json") is False


class TestKeyValueStore:
    """Tests for KeyValueStore."""

    @pytest.mark.asyncio
    async def test_set_get_remove(self, key_value):
        await key_value.set("freya-activeSessionId-u1", "s1")
        assert await key_value.get("freya-activeSessionId-u1") == "s1"
        await key_value.remove("freya-activeSessionId-u1")
        assert await key_value.get("freya-activeSessionId-u1") is None

    @pytest.mark.asyncio
    async def test_failed_write_raises(self, key_value):
        key_value.storage.save = AsyncMock(return_value=False)
        with pytest.raises(PersistenceError):
            await key_value.set("k", "v")


class TestSessionRepository:
    """Tests for SessionRepository."""

    @pytest.mark.asyncio
    async def test_create_names_by_ordinal(self, session_repository):
        session = await session_repository.create_session("u1", 2)
        assert session.name == "Chat 3"
        assert session.user_id == "u1"
        assert session.messages == []

        stored = await session_repository.get_session("u1", session.id)
        assert stored.id == session.id
        assert stored.name == "Chat 3"
        assert stored.created_at == session.created_at

    @pytest.mark.asyncio
    async def test_list_newest_first(self, session_repository):
        first = await session_repository.create_session("u1", 0)
        second = await session_repository.create_session("u1", 1)
        await session_repository.save_session(
            "u1", first.model_copy(update={"messages": [Message(sender="user", content="hi")]})
        )

        sessions = await session_repository.list_sessions("u1")
        assert [s.id for s in sessions] == [first.id, second.id]
        assert await session_repository.list_sessions("someone-else") == []

    @pytest.mark.asyncio
    async def test_save_replaces_messages_and_stamps_time(self, session_repository):
        session = await session_repository.create_session("u1", 0)
        loading = Message(id="m2", sender="assistant", type="loading", content="Processing...")
        first = session.model_copy(update={
            "messages": [Message(id="m1", sender="user", content="/joke"), loading],
            "last_updated_at": session.last_updated_at - timedelta(days=1),
        })
        saved = await session_repository.save_session("u1", first)
        assert saved.last_updated_at >= session.last_updated_at

        final = Message(id="m2", sender="assistant", type="text", content="ha")
        second = saved.model_copy(update={"messages": [saved.messages[0], final], "name": "Jokes"})
        saved = await session_repository.save_session("u1", second)

        stored = await session_repository.get_session("u1", session.id)
        assert stored.name == "Jokes"
        assert [m.id for m in stored.messages] == ["m1", "m2"]
        assert stored.messages[1].content == "ha"
        assert stored.created_at == session.created_at

    @pytest.mark.asyncio
    async def test_save_checks_owner(self, session_repository):
        session = await session_repository.create_session("u1", 0)
        with pytest.raises(SessionOwnershipError):
            await session_repository.save_session("u2", session)

    @pytest.mark.asyncio
    async def test_save_unknown_session(self, session_repository):
        session = await session_repository.create_session("u1", 0)
        missing = session.model_copy(update={"id": "does-not-exist"})
        with pytest.raises(SessionNotFoundError):
            await session_repository.save_session("u1", missing)

    @pytest.mark.asyncio
    async def test_failed_write_raises(self, session_repository):
        session_repository.storage.save = AsyncMock(return_value=False)
        with pytest.raises(PersistenceError):
            await session_repository.create_session("u1", 0)

    @pytest.mark.asyncio
    async def test_concurrent_saves_are_serialized(self, session_repository):
        session = await session_repository.create_session("u1", 0)
        versions = [
            session.model_copy(update={"messages": [Message(sender="user", content=str(i))]})
            for i in range(5)
        ]
        await asyncio.gather(*(session_repository.save_session("u1", v) for v in versions))

        stored = await session_repository.get_session("u1", session.id)
        assert stored.messages[0].content == "4"

    @pytest.mark.asyncio
    async def test_session_locks_are_released(self, session_repository):
        sessions = [await session_repository.create_session("u1", i) for i in range(3)]
        await asyncio.gather(*(session_repository.save_session("u1", s) for s in sessions))
        gc.collect()

        assert len(session_repository._locks) == 0


class TestUserStorage:
    """Tests for UserStorage."""

    @pytest.mark.asyncio
    async def test_create_and_lookup_by_email(self, user_storage):
        user = await user_storage.create_user("u1", "Alice@Example.com", "hash")
        assert user["email"] == "alice@example.com"

        found = await user_storage.get_user_by_email("alice@example.COM")
        assert found["user_id"] == "u1"
        assert await user_storage.get_user_by_email("bob@example.com") is None
