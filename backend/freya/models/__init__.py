"""Models module."""

from .user import Credentials, Identity, TokenData, AuthResult, AuthResponse
from .chat import (
    Message, ChatSession, SessionSummary, CreateSessionRequest, SendMessageRequest,
    MessageView, ChatStateView, SendMessageResponse,
    new_id, utc_now
)

__all__ = [
    'Credentials', 'Identity', 'TokenData', 'AuthResult', 'AuthResponse',
    'Message', 'ChatSession', 'SessionSummary', 'CreateSessionRequest', 'SendMessageRequest',
    'MessageView', 'ChatStateView', 'SendMessageResponse',
    'new_id', 'utc_now'
]
