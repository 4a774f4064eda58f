"""
Tests for the session lifecycle controller, its save scheduler and the
client registry.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from freya.core.errors import (
    AssistantBusyError,
    NoActiveSessionError,
    PersistenceError,
    SessionNotFoundError,
)
from freya.core.lifecycle import SessionLifecycleController, SessionSaveScheduler, resolve_active_session
from freya.core.registry import ChatClientRegistry
from freya.models import ChatSession, Identity
from freya.services import GuestChatService, active_session_key

ALICE = Identity(id="alice", email="alice@example.com")


@pytest.fixture
def controller(chat_services, plugin_registry):
    return SessionLifecycleController(chat_services, plugin_registry, client_id="test-client", plugin_timeout=5.0)


def _session(session_id: str, minutes_ago: int) -> ChatSession:
    stamp = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago)
    return ChatSession(id=session_id, user_id="alice", name=f"Chat {session_id}", last_updated_at=stamp)


class TestResolveActiveSession:
    """Tests for resolve_active_session."""

    def test_stale_remembered_id_falls_back_to_latest(self):
        sessions = [_session("1", minutes_ago=10), _session("2", minutes_ago=1)]
        assert resolve_active_session(sessions, "3").id == "2"

    def test_remembered_id_wins(self):
        sessions = [_session("1", minutes_ago=10), _session("2", minutes_ago=1)]
        assert resolve_active_session(sessions, "1").id == "1"

    def test_no_sessions(self):
        assert resolve_active_session([], "1") is None


class TestSessionSaveScheduler:
    """Tests for SessionSaveScheduler."""

    @pytest.mark.asyncio
    async def test_one_save_in_flight_and_latest_wins(self):
        gate = asyncio.Event()
        in_flight = 0
        max_in_flight = 0
        saved_names = []

        async def save(session):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await gate.wait()
            in_flight -= 1
            saved_names.append(session.name)
            return session

        applied = []
        scheduler = SessionSaveScheduler(save, applied.append)
        session = ChatSession(id="s1", name="v1")

        scheduler.schedule(session)
        await asyncio.sleep(0)
        scheduler.schedule(session.model_copy(update={"name": "v2"}))
        scheduler.schedule(session.model_copy(update={"name": "v3"}))
        assert scheduler.latest_version("s1") == 3

        gate.set()
        await scheduler.flush()

        assert max_in_flight == 1
        assert saved_names == ["v1", "v3"]
        assert [s.name for s in applied] == ["v3"]
        assert scheduler.in_flight == []

    @pytest.mark.asyncio
    async def test_failed_save_does_not_apply(self):
        save = AsyncMock(side_effect=[PersistenceError("disk full"), ChatSession(id="s1", name="saved")])
        applied = []
        scheduler = SessionSaveScheduler(save, applied.append)

        scheduler.schedule(ChatSession(id="s1", name="first"))
        await scheduler.flush()
        assert applied == []

        scheduler.schedule(ChatSession(id="s1", name="second"))
        await scheduler.flush()
        assert [s.name for s in applied] == ["saved"]

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        gate = asyncio.Event()

        async def save(session):
            await gate.wait()
            return session

        applied = []
        scheduler = SessionSaveScheduler(save, applied.append)
        scheduler.schedule(ChatSession(id="s1", name="v1"))
        await asyncio.sleep(0)

        await scheduler.cancel_all()
        gate.set()
        await scheduler.flush()
        assert applied == []
        assert scheduler.latest_version("s1") == 0


class TestInitialization:
    """Tests for identity transitions and the startup sequence."""

    @pytest.mark.asyncio
    async def test_guest_gets_a_new_session(self, controller):
        state = await controller.set_identity(None)

        assert state.is_initialized is True
        assert state.is_loading is False
        assert len(state.all_sessions) == 1
        assert state.all_sessions[0].name == "Guest Chat 1"
        assert state.active_session_id == state.all_sessions[0].id
        assert state.current_messages == ()

    @pytest.mark.asyncio
    async def test_authenticated_picks_most_recent(self, controller, session_repository):
        older = await session_repository.create_session("alice", 0)
        newer = await session_repository.create_session("alice", 1)
        older = await session_repository.save_session("alice", older)

        state = await controller.set_identity(ALICE)
        assert state.active_session_id == older.id
        assert {s.id for s in state.all_sessions} == {older.id, newer.id}

    @pytest.mark.asyncio
    async def test_authenticated_uses_remembered_session(self, controller, session_repository, key_value):
        first = await session_repository.create_session("alice", 0)
        await session_repository.create_session("alice", 1)
        await key_value.set(active_session_key("alice"), first.id)

        state = await controller.set_identity(ALICE)
        assert state.active_session_id == first.id

    @pytest.mark.asyncio
    async def test_authenticated_without_sessions_creates_and_remembers(self, controller, key_value):
        state = await controller.set_identity(ALICE)

        assert state.all_sessions[0].name == "Chat 1"
        assert state.all_sessions[0].user_id == "alice"
        assert await key_value.get(active_session_key("alice")) == state.active_session_id

    @pytest.mark.asyncio
    async def test_same_identity_is_a_noop(self, controller):
        first = await controller.set_identity(None)
        second = await controller.set_identity(None)
        assert second.active_session_id == first.active_session_id

    @pytest.mark.asyncio
    async def test_load_failure_starts_empty(self, plugin_registry):
        service = GuestChatService()
        service.load_initial_data = AsyncMock(side_effect=PersistenceError("storage offline"))
        factory = MagicMock()
        factory.for_identity.return_value = service

        controller = SessionLifecycleController(factory, plugin_registry)
        state = await controller.set_identity(None)

        assert state.is_initialized is True
        assert len(state.all_sessions) == 1

    @pytest.mark.asyncio
    async def test_create_failure_leaves_no_active_session(self, plugin_registry):
        service = GuestChatService()
        service.create_session = AsyncMock(side_effect=PersistenceError("storage offline"))
        factory = MagicMock()
        factory.for_identity.return_value = service

        controller = SessionLifecycleController(factory, plugin_registry)
        state = await controller.set_identity(None)

        assert state.is_initialized is True
        assert state.active_session_id is None
        with pytest.raises(NoActiveSessionError):
            await controller.send_message("/echo hi")


class TestCommands:
    """Tests for send_message, new_session and switch_session."""

    @pytest.mark.asyncio
    async def test_send_message_is_saved(self, controller, session_repository):
        await controller.set_identity(ALICE)
        reply = await controller.send_message("/echo hello")
        await controller.flush()

        assert reply.type == "plugin"
        stored = await session_repository.get_session("alice", controller.state.active_session_id)
        assert [m.sender for m in stored.messages] == ["user", "assistant"]
        assert stored.messages[1].type == "plugin"
        assert stored.messages[1].plugin_data == {"text": "hello"}

        roster_entry = controller.state.active_session
        assert roster_entry.last_updated_at == stored.last_updated_at

    @pytest.mark.asyncio
    async def test_blank_message_rejected(self, controller):
        await controller.set_identity(None)
        with pytest.raises(ValueError):
            await controller.send_message("   ")
        assert controller.state.current_messages == ()

    @pytest.mark.asyncio
    async def test_busy_controller_refuses_commands(self, controller, slow_plugin):
        await controller.set_identity(None)
        task = asyncio.create_task(controller.send_message("/slow"))
        await slow_plugin.started.wait()

        with pytest.raises(AssistantBusyError):
            await controller.send_message("/echo hi")
        with pytest.raises(AssistantBusyError):
            await controller.new_session()

        slow_plugin.release.set()
        reply = await task
        assert reply.content == "slow done"
        assert controller.is_busy is False
        await controller.flush()

    @pytest.mark.asyncio
    async def test_new_session(self, controller, key_value):
        await controller.set_identity(ALICE)
        await controller.send_message("hello")

        session = await controller.new_session()
        assert session.name == "Chat 2"
        assert controller.state.active_session_id == session.id
        assert controller.state.current_messages == ()
        assert await key_value.get(active_session_key("alice")) == session.id
        await controller.flush()

    @pytest.mark.asyncio
    async def test_switch_session_restores_messages(self, controller):
        await controller.set_identity(None)
        first_id = controller.state.active_session_id
        await controller.send_message("hello")

        await controller.new_session()
        await controller.switch_session(first_id)

        assert controller.state.active_session_id == first_id
        assert [m.content for m in controller.state.current_messages] == ["hello", "I didn't understand that."]
        await controller.flush()

    @pytest.mark.asyncio
    async def test_switch_unknown_session(self, controller):
        await controller.set_identity(None)
        with pytest.raises(SessionNotFoundError):
            await controller.switch_session("nope")

    @pytest.mark.asyncio
    async def test_sessions_stay_isolated(self, controller, session_repository):
        await controller.set_identity(ALICE)
        session_a = controller.state.active_session_id
        await controller.send_message("/echo for a")

        session_b = (await controller.new_session()).id
        await controller.send_message("/echo for b")
        await controller.flush()

        stored_a = await session_repository.get_session("alice", session_a)
        stored_b = await session_repository.get_session("alice", session_b)
        assert [m.content for m in stored_a.messages] == ["/echo for a", "for a"]
        assert [m.content for m in stored_b.messages] == ["/echo for b", "for b"]

        roster_a = controller.state.find_session(session_a)
        assert [m.content for m in roster_a.messages] == ["/echo for a", "for a"]


class TestIdentityTransitions:
    """Tests for sign-in, sign-out and stale commands."""

    @pytest.mark.asyncio
    async def test_sign_in_replaces_guest_state(self, controller):
        await controller.set_identity(None)
        await controller.send_message("guest words")

        state = await controller.set_identity(ALICE)
        assert all(not s.is_guest for s in state.all_sessions)
        assert state.current_messages == ()

    @pytest.mark.asyncio
    async def test_sign_out_starts_fresh_guest_context(self, controller):
        await controller.set_identity(None)
        guest_service = controller.service
        await controller.send_message("hello")

        state = await controller.sign_out()
        assert guest_service.remembered_session_id is None
        assert controller.service is not guest_service
        assert len(state.all_sessions) == 1
        assert state.current_messages == ()

    @pytest.mark.asyncio
    async def test_sign_out_keeps_latest_messages(self, controller, session_repository):
        await controller.set_identity(ALICE)
        session_id = controller.state.active_session_id
        await controller.send_message("/echo hello")

        await controller.sign_out()

        stored = await session_repository.get_session("alice", session_id)
        assert [m.content for m in stored.messages] == ["/echo hello", "hello"]

    @pytest.mark.asyncio
    async def test_hung_save_does_not_block_identity_change(self, plugin_registry):
        gate = asyncio.Event()
        service = GuestChatService()

        async def hang(session):
            await gate.wait()
            return session

        service.save_session = hang
        factory = MagicMock()
        factory.for_identity.side_effect = [service, GuestChatService()]

        controller = SessionLifecycleController(factory, plugin_registry, flush_timeout=0.05)
        await controller.set_identity(None)
        await controller.send_message("hello")
        assert controller.saves.in_flight

        state = await asyncio.wait_for(controller.set_identity(None, force=True), timeout=2.0)
        assert state.current_messages == ()
        assert controller.saves.in_flight == []

    @pytest.mark.asyncio
    async def test_command_from_previous_identity_is_discarded(self, controller, slow_plugin):
        await controller.set_identity(None)
        task = asyncio.create_task(controller.send_message("/slow"))
        await slow_plugin.started.wait()

        await controller.set_identity(ALICE)
        slow_plugin.release.set()

        assert await task is None
        assert controller.state.current_messages == ()
        assert controller.state.is_assistant_processing is False


class TestChatClientRegistry:
    """Tests for ChatClientRegistry."""

    @pytest.mark.asyncio
    async def test_one_controller_per_client(self, chat_services, plugin_registry):
        registry = ChatClientRegistry(chat_services, plugin_registry)
        first = registry.get_or_create("a")
        assert registry.get_or_create("a") is first
        assert registry.get_or_create("b") is not first
        assert len(registry) == 2

        assert await registry.teardown("a") is True
        assert await registry.teardown("a") is False
        assert registry.get("a") is None

    @pytest.mark.asyncio
    async def test_shutdown_flushes_saves(self, chat_services, plugin_registry, session_repository):
        registry = ChatClientRegistry(chat_services, plugin_registry)
        controller = registry.get_or_create("a")
        await controller.set_identity(ALICE)
        await controller.send_message("/echo keep me")
        session_id = controller.state.active_session_id

        await registry.shutdown()

        stored = await session_repository.get_session("alice", session_id)
        assert [m.content for m in stored.messages] == ["/echo keep me", "keep me"]
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_idle_clients_are_evicted(self, chat_services, plugin_registry, session_repository):
        registry = ChatClientRegistry(chat_services, plugin_registry, idle_ttl=60.0)
        controller = registry.get_or_create("a")
        await controller.set_identity(ALICE)
        await controller.send_message("/echo keep me")
        session_id = controller.state.active_session_id

        assert await registry.evict_idle(now=time.monotonic() + 30) == 0
        assert registry.get("a") is controller

        assert await registry.evict_idle(now=time.monotonic() + 61) == 1
        assert len(registry) == 0
        stored = await session_repository.get_session("alice", session_id)
        assert [m.content for m in stored.messages] == ["/echo keep me", "keep me"]

    @pytest.mark.asyncio
    async def test_busy_clients_are_not_evicted(self, chat_services, plugin_registry, slow_plugin):
        registry = ChatClientRegistry(chat_services, plugin_registry, idle_ttl=60.0)
        controller = registry.get_or_create("a")
        await controller.set_identity(None)
        task = asyncio.create_task(controller.send_message("/slow"))
        await slow_plugin.started.wait()

        assert await registry.evict_idle(now=time.monotonic() + 120) == 0

        slow_plugin.release.set()
        await task
        assert await registry.evict_idle(now=time.monotonic() + 120) == 1

    @pytest.mark.asyncio
    async def test_no_ttl_keeps_clients(self, chat_services, plugin_registry):
        registry = ChatClientRegistry(chat_services, plugin_registry)
        registry.get_or_create("a")
        assert await registry.evict_idle(now=time.monotonic() + 10_000) == 0
        assert len(registry) == 1
