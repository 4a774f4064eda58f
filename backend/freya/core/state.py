"""
Chat Window State - The session state machine.

All changes to the current message list and the session roster go through
chat_window_reducer. The reducer is pure: it never mutates the incoming state
and returns a new ChatWindowState for every handled action.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from ..models import ChatSession, Message

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    SET_LOADING = "SET_LOADING"
    INITIALIZATION_LOADED = "INITIALIZATION_LOADED"
    SET_ACTIVE_SESSION_AND_MESSAGES = "SET_ACTIVE_SESSION_AND_MESSAGES"
    RESET_FOR_NEW_CONTEXT = "RESET_FOR_NEW_CONTEXT"
    CREATE_NEW_SESSION_SUCCESS = "CREATE_NEW_SESSION_SUCCESS"
    ADD_MESSAGE = "ADD_MESSAGE"
    REPLACE_MESSAGE = "REPLACE_MESSAGE"
    SET_ASSISTANT_PROCESSING = "SET_ASSISTANT_PROCESSING"
    MARK_INITIALIZED = "MARK_INITIALIZED"
    UPDATE_SESSION_IN_ALL_SESSIONS = "UPDATE_SESSION_IN_ALL_SESSIONS"


@dataclass(frozen=True)
class ChatAction:
    type: ActionType
    payload: Any = None


class ChatWindowState(BaseModel):
    """Snapshot of one chat context."""
    model_config = ConfigDict(frozen=True)

    current_messages: Tuple[Message, ...] = ()
    active_session_id: Optional[str] = None
    all_sessions: Tuple[ChatSession, ...] = ()
    is_initialized: bool = False
    is_assistant_processing: bool = False
    is_loading: bool = False

    def find_session(self, session_id: Optional[str]) -> Optional[ChatSession]:
        for session in self.all_sessions:
            if session.id == session_id:
                return session
        return None

    @property
    def active_session(self) -> Optional[ChatSession]:
        return self.find_session(self.active_session_id)


# Action creators

def set_loading(is_loading: bool) -> ChatAction:
    return ChatAction(ActionType.SET_LOADING, is_loading)


def initialization_loaded(sessions: Sequence[ChatSession], active_session_id: Optional[str]) -> ChatAction:
    return ChatAction(ActionType.INITIALIZATION_LOADED, (tuple(sessions), active_session_id))


def set_active_session_and_messages(session_id: str, messages: Sequence[Message]) -> ChatAction:
    return ChatAction(ActionType.SET_ACTIVE_SESSION_AND_MESSAGES, (session_id, tuple(messages)))


def reset_for_new_context() -> ChatAction:
    return ChatAction(ActionType.RESET_FOR_NEW_CONTEXT)


def create_new_session_success(session: ChatSession) -> ChatAction:
    return ChatAction(ActionType.CREATE_NEW_SESSION_SUCCESS, session)


def add_message(message: Message) -> ChatAction:
    return ChatAction(ActionType.ADD_MESSAGE, message)


def replace_message(message: Message) -> ChatAction:
    return ChatAction(ActionType.REPLACE_MESSAGE, message)


def set_assistant_processing(is_processing: bool) -> ChatAction:
    return ChatAction(ActionType.SET_ASSISTANT_PROCESSING, is_processing)


def mark_initialized() -> ChatAction:
    return ChatAction(ActionType.MARK_INITIALIZED)


def update_session_in_all_sessions(session: ChatSession) -> ChatAction:
    return ChatAction(ActionType.UPDATE_SESSION_IN_ALL_SESSIONS, session)


def chat_window_reducer(state: ChatWindowState, action: ChatAction) -> ChatWindowState:
    """
    Apply one action.

    Raises:
        ValueError: For an action type the reducer does not know; that is a
            programming error, not a recoverable condition.
    """
    kind = action.type

    if kind == ActionType.SET_LOADING:
        return state.model_copy(update={"is_loading": bool(action.payload)})

    elif kind == ActionType.INITIALIZATION_LOADED:
        sessions, active_session_id = action.payload
        return state.model_copy(update={
            "all_sessions": tuple(sessions),
            "active_session_id": active_session_id,
        })

    elif kind == ActionType.SET_ACTIVE_SESSION_AND_MESSAGES:
        session_id, messages = action.payload
        return state.model_copy(update={
            "active_session_id": session_id,
            "current_messages": tuple(messages),
        })

    elif kind == ActionType.RESET_FOR_NEW_CONTEXT:
        # The loading flag belongs to whoever is driving the reload
        return ChatWindowState(is_loading=state.is_loading)

    elif kind == ActionType.CREATE_NEW_SESSION_SUCCESS:
        new_session: ChatSession = action.payload
        roster = tuple(s for s in state.all_sessions if s.id != new_session.id) + (new_session,)
        return state.model_copy(update={
            "all_sessions": roster,
            "active_session_id": new_session.id,
            "current_messages": (),
        })

    elif kind == ActionType.ADD_MESSAGE:
        return state.model_copy(update={
            "current_messages": state.current_messages + (action.payload,),
        })

    elif kind == ActionType.REPLACE_MESSAGE:
        replacement: Message = action.payload
        if not any(m.id == replacement.id for m in state.current_messages):
            logger.debug(f"replace-message ignored: no message with id {replacement.id}")
            return state
        return state.model_copy(update={
            "current_messages": tuple(
                replacement if m.id == replacement.id else m for m in state.current_messages
            ),
        })

    elif kind == ActionType.SET_ASSISTANT_PROCESSING:
        return state.model_copy(update={"is_assistant_processing": bool(action.payload)})

    elif kind == ActionType.MARK_INITIALIZED:
        return state.model_copy(update={"is_initialized": True})

    elif kind == ActionType.UPDATE_SESSION_IN_ALL_SESSIONS:
        updated: ChatSession = action.payload
        if state.find_session(updated.id) is None:
            roster = state.all_sessions + (updated,)
        else:
            roster = tuple(updated if s.id == updated.id else s for s in state.all_sessions)
        return state.model_copy(update={"all_sessions": roster})

    raise ValueError(f"Unhandled action type in chat_window_reducer: {kind!r}")


StateListener = Callable[[ChatWindowState, ChatWindowState, ChatAction], None]


class ChatStore:
    """
    Holds the current ChatWindowState and applies actions to it.

    Listeners are called synchronously after each transition with
    (previous_state, new_state, action).
    """

    def __init__(
        self,
        initial_state: Optional[ChatWindowState] = None,
        reducer: Callable[[ChatWindowState, ChatAction], ChatWindowState] = chat_window_reducer,
    ):
        self._state = initial_state or ChatWindowState()
        self._reducer = reducer
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> ChatWindowState:
        return self._state

    def dispatch(self, action: ChatAction) -> ChatWindowState:
        previous = self._state
        self._state = self._reducer(previous, action)
        for listener in list(self._listeners):
            listener(previous, self._state, action)
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
