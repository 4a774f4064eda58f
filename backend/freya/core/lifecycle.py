"""
Session Lifecycle Controller - Owns one chat context from load to teardown.

The controller reacts to identity changes by resetting and reloading the
chat state, picks the active session, runs commands through the execution
pipeline, and saves the active session in the background whenever its
message list changes.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .errors import AssistantBusyError, FreyaError, NoActiveSessionError, SessionNotFoundError
from .logging_config import ChatLogAdapter
from .pipeline import ExecutionPipeline
from .state import (
    ActionType,
    ChatAction,
    ChatStore,
    ChatWindowState,
    create_new_session_success,
    initialization_loaded,
    mark_initialized,
    reset_for_new_context,
    set_active_session_and_messages,
    set_loading,
    update_session_in_all_sessions,
)
from ..models import ChatSession, Identity, Message
from ..plugins import PluginRegistry
from ..services.chat_service import ChatDataService, ChatServiceFactory, InitialData

logger = logging.getLogger(__name__)

_SAVE_TRIGGERS = (ActionType.ADD_MESSAGE, ActionType.REPLACE_MESSAGE)
DEFAULT_FLUSH_TIMEOUT = 10.0


def resolve_active_session(
    sessions: Sequence[ChatSession],
    remembered_id: Optional[str],
) -> Optional[ChatSession]:
    """
    Pick the session to activate after a load.

    The remembered session wins if it still exists, otherwise the most
    recently updated one. None means a new session has to be created.
    """
    if remembered_id is not None:
        for session in sessions:
            if session.id == remembered_id:
                return session
    if not sessions:
        return None
    return max(sessions, key=lambda s: s.last_updated_at)


class SessionSaveScheduler:
    """
    Background saves, serialized per session.

    Every scheduled snapshot gets the next version number for its session.
    At most one save per session is in flight; while it runs, newer
    snapshots replace each other in a single pending slot. A saved copy is
    handed to on_saved only if no newer snapshot was scheduled meanwhile.
    """

    def __init__(
        self,
        save: Callable[[ChatSession], Awaitable[ChatSession]],
        on_saved: Callable[[ChatSession], None],
        log: Optional[ChatLogAdapter] = None,
    ):
        self._save = save
        self._on_saved = on_saved
        self.log = log or logger
        self._versions: Dict[str, int] = {}
        self._pending: Dict[str, Tuple[int, ChatSession]] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(self, session: ChatSession) -> int:
        version = self._versions.get(session.id, 0) + 1
        self._versions[session.id] = version
        self._pending[session.id] = (version, session)

        if session.id not in self._tasks:
            self._tasks[session.id] = asyncio.create_task(
                self._drain(session.id), name=f"save-session-{session.id}"
            )
        return version

    def latest_version(self, session_id: str) -> int:
        return self._versions.get(session_id, 0)

    @property
    def in_flight(self) -> List[str]:
        return list(self._tasks)

    async def _drain(self, session_id: str) -> None:
        try:
            while session_id in self._pending:
                version, snapshot = self._pending.pop(session_id)
                try:
                    saved = await self._save(snapshot)
                except FreyaError as e:
                    # Local state stays authoritative until a later save succeeds
                    self.log.error(f"Failed to save session {session_id} (version {version}): {e}", exc_info=True)
                    continue

                if version == self._versions.get(session_id):
                    self._on_saved(saved)
                else:
                    self.log.debug(
                        f"Save of session {session_id} version {version} superseded by "
                        f"version {self._versions.get(session_id)}"
                    )
        finally:
            if self._tasks.get(session_id) is asyncio.current_task():
                del self._tasks[session_id]

    async def flush(self) -> None:
        """Wait until every scheduled save has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        self._pending.clear()
        self._versions.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self.log.debug(f"Cancelled {len(tasks)} pending save(s)")


class SessionLifecycleController:
    """
    Chat context for one client.

    Usage:
        controller = SessionLifecycleController(factory, registry, client_id="abc")
        await controller.set_identity(None)           # guest
        await controller.send_message("/calc 2+2")
        await controller.set_identity(identity)       # signed in: full reload
    """

    def __init__(
        self,
        services: ChatServiceFactory,
        registry: PluginRegistry,
        client_id: str = "local",
        plugin_timeout: Optional[float] = None,
        flush_timeout: Optional[float] = None,
    ):
        self.services = services
        self.registry = registry
        self.client_id = client_id
        self.flush_timeout = flush_timeout or plugin_timeout or DEFAULT_FLUSH_TIMEOUT
        self.log = ChatLogAdapter(logger, {"client_id": client_id})

        self.store = ChatStore()
        self.pipeline = ExecutionPipeline(self.store, registry, plugin_timeout, self.log)
        self.saves = SessionSaveScheduler(self._save_session, self._apply_saved_session, self.log)

        self._identity: Optional[Identity] = None
        self._identity_known = False
        self._service: Optional[ChatDataService] = None
        self._generation = 0
        self._init_lock = asyncio.Lock()
        self._command_lock = asyncio.Lock()
        self._unsubscribe = self.store.subscribe(self._on_state_change)

    @property
    def state(self) -> ChatWindowState:
        return self.store.state

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def service(self) -> Optional[ChatDataService]:
        return self._service

    @property
    def is_busy(self) -> bool:
        return self._command_lock.locked() or self.state.is_assistant_processing

    # Identity transitions

    async def set_identity(self, identity: Optional[Identity], force: bool = False) -> ChatWindowState:
        """
        Make this context belong to identity (None for a guest).

        An unchanged identity is a no-op unless force is set. Otherwise
        saves already scheduled for the outgoing identity are given
        flush_timeout seconds to land, in-flight commands become stale, and
        the state is reloaded from the new identity's persistence adapter.
        """
        async with self._init_lock:
            if self._identity_known and not force and _identity_key(identity) == _identity_key(self._identity):
                return self.state

            previous = self._identity
            await self._flush_outgoing_saves()
            await self.saves.cancel_all()
            self._generation += 1
            self._identity = identity
            self._identity_known = True
            self._service = self.services.for_identity(identity)

            self.log.bind(user_id=identity.id if identity else None, session_id=None)
            self.log.info(
                f"Chat context switching from {_identity_label(previous)} to {_identity_label(identity)}"
            )
            await self._initialize()
            return self.state

    async def _initialize(self) -> None:
        self.store.dispatch(set_loading(True))
        self.store.dispatch(reset_for_new_context())

        try:
            data = await self._service.load_initial_data()
        except FreyaError as e:
            self.log.error(f"Failed to load chat sessions, starting empty: {e}", exc_info=True)
            data = InitialData()

        self.store.dispatch(initialization_loaded(data.sessions, data.active_session_id))

        active = resolve_active_session(data.sessions, data.active_session_id)
        if active is not None:
            self.store.dispatch(set_active_session_and_messages(active.id, active.messages))
        else:
            try:
                await self._create_and_activate()
            except FreyaError as e:
                self.log.error(f"Failed to create an initial session: {e}", exc_info=True)

        if self.state.active_session_id is not None:
            self.log.bind(session_id=self.state.active_session_id)
            await self._remember_active(self.state.active_session_id)

        self.store.dispatch(mark_initialized())
        self.store.dispatch(set_loading(False))
        self.log.info(
            f"Chat initialized with {len(self.state.all_sessions)} session(s), "
            f"active={self.state.active_session_id}"
        )

    async def sign_out(self) -> ChatWindowState:
        """Forget guest bookkeeping and fall back to a fresh guest context."""
        active = self.state.active_session
        if active is not None and active.is_guest and self._service is not None:
            await self._remember_active(None)
        return await self.set_identity(None, force=True)

    # Commands

    async def send_message(self, text: str) -> Optional[Message]:
        """
        Run one user command.

        Raises:
            ValueError: If text is blank
            NoActiveSessionError: If no session is active
            AssistantBusyError: If a previous command is still running
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Message content must not be empty")
        self._require_active_session()
        if self.is_busy:
            raise AssistantBusyError()

        async with self._command_lock:
            generation = self._generation
            self.log.debug(f"Dispatching command in session {self.state.active_session_id}")
            return await self.pipeline.run(text, is_stale=lambda: generation != self._generation)

    async def new_session(self) -> ChatSession:
        """
        Create a session and make it active.

        Raises:
            AssistantBusyError: While a command is running
            PersistenceError: If the adapter could not create the session
        """
        self._require_initialized()
        if self.is_busy:
            raise AssistantBusyError()

        async with self._command_lock:
            self._sync_active_into_roster()
            try:
                session = await self._create_and_activate()
            except FreyaError as e:
                self.log.error(f"Failed to create a new session: {e}", exc_info=True)
                raise
            await self._remember_active(session.id)
            return session

    async def switch_session(self, session_id: str) -> ChatWindowState:
        """
        Make another loaded session active.

        Raises:
            AssistantBusyError: While a command is running
            SessionNotFoundError: If the session is not in the roster
        """
        self._require_initialized()
        if self.is_busy:
            raise AssistantBusyError()
        if self.state.find_session(session_id) is None:
            raise SessionNotFoundError(session_id)
        if session_id == self.state.active_session_id:
            return self.state

        async with self._command_lock:
            self._sync_active_into_roster()
            target = self.state.find_session(session_id)
            self.store.dispatch(set_active_session_and_messages(target.id, target.messages))
            self.log.bind(session_id=target.id)
            self.log.info(f"Switched to session {target.id}")
            await self._remember_active(target.id)
            return self.state

    async def flush(self) -> None:
        await self.saves.flush()

    async def _flush_outgoing_saves(self) -> None:
        pending = len(self.saves.in_flight)
        if not pending:
            return
        try:
            await asyncio.wait_for(self.saves.flush(), timeout=self.flush_timeout)
        except asyncio.TimeoutError:
            self.log.warning(
                f"Gave up waiting for {pending} save(s) after {self.flush_timeout}s; cancelling"
            )

    async def teardown(self) -> None:
        """Stop background work; the controller must not be used afterwards."""
        self._generation += 1
        await self.saves.cancel_all()
        self._unsubscribe()
        self.log.info("Chat context torn down")

    # Internals

    def _require_initialized(self) -> None:
        if not self.state.is_initialized or self._service is None:
            raise NoActiveSessionError("Chat is still initializing. Please wait.")

    def _require_active_session(self) -> None:
        self._require_initialized()
        if self.state.active_session_id is None:
            raise NoActiveSessionError()

    async def _create_and_activate(self) -> ChatSession:
        session = await self._service.create_session(len(self.state.all_sessions))
        self.store.dispatch(create_new_session_success(session))
        self.log.bind(session_id=session.id)
        self.log.info(f"Created session {session.id} ('{session.name}')")
        return session

    async def _remember_active(self, session_id: Optional[str]) -> None:
        try:
            await self._service.save_active_session_id(session_id)
        except FreyaError as e:
            self.log.error(f"Failed to remember active session {session_id}: {e}", exc_info=True)

    def _sync_active_into_roster(self) -> None:
        """Copy the current message list into the active session's roster entry."""
        active = self.state.active_session
        if active is not None:
            self.store.dispatch(update_session_in_all_sessions(
                active.model_copy(update={"messages": list(self.state.current_messages)})
            ))

    def _on_state_change(self, previous: ChatWindowState, current: ChatWindowState, action: ChatAction) -> None:
        if action.type not in _SAVE_TRIGGERS:
            return
        if not current.is_initialized or current.active_session_id is None:
            return
        if previous.current_messages == current.current_messages:
            return

        active = current.active_session
        if active is None:
            self.log.warning(f"Active session {current.active_session_id} missing from roster; save skipped")
            return

        snapshot = active.model_copy(update={"messages": list(current.current_messages)})
        self.saves.schedule(snapshot)

    async def _save_session(self, session: ChatSession) -> ChatSession:
        return await self._service.save_session(session)

    def _apply_saved_session(self, saved: ChatSession) -> None:
        self.store.dispatch(update_session_in_all_sessions(saved))


def _identity_key(identity: Optional[Identity]) -> Optional[str]:
    return identity.id if identity is not None else None


def _identity_label(identity: Optional[Identity]) -> str:
    return f"user {identity.id}" if identity is not None else "guest"
