"""
Chat Models - Messages, sessions and the request bodies that carry them.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .user import Identity

MessageSender = Literal["user", "assistant"]
MessageType = Literal["text", "plugin", "loading", "error"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Message(BaseModel):
    """
    One turn in a session.

    Messages are immutable: a loading placeholder is superseded by a new
    Message carrying the same id, never edited in place.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    sender: MessageSender
    content: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    type: MessageType = "text"
    plugin_name: Optional[str] = None
    plugin_data: Optional[Any] = None
    error_message: Optional[str] = None


class ChatSession(BaseModel):
    """A named, timestamped container for an ordered list of messages."""
    id: str = Field(default_factory=new_id)
    user_id: Optional[str] = None  # None for guest sessions
    name: str
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


class SessionSummary(BaseModel):
    """Roster entry shown in the sidebar."""
    id: str
    name: str
    created_at: datetime
    last_updated_at: datetime
    message_count: int

    @classmethod
    def from_session(cls, session: ChatSession) -> "SessionSummary":
        return cls(
            id=session.id,
            name=session.name,
            created_at=session.created_at,
            last_updated_at=session.last_updated_at,
            message_count=len(session.messages),
        )


class CreateSessionRequest(BaseModel):
    """Body of POST /chat/sessions."""
    session_number: int = Field(..., ge=0)


class SendMessageRequest(BaseModel):
    """Body of POST /chat/message."""
    content: str

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message content must not be empty")
        return value.strip()


class MessageView(Message):
    """A message as returned to the browser, with its plugin card if one renders."""
    card: Optional[Dict[str, Any]] = None


class ChatStateView(BaseModel):
    """Everything the chat window needs to draw itself."""
    user: Optional[Identity] = None
    active_session_id: Optional[str] = None
    is_initialized: bool = False
    is_loading: bool = False
    is_assistant_processing: bool = False
    sessions: List[SessionSummary] = Field(default_factory=list)
    messages: List[MessageView] = Field(default_factory=list)


class SendMessageResponse(BaseModel):
    reply: Optional[MessageView] = None
    state: ChatStateView
