"""Services module - persistence adapters and the identity provider."""

from .chat_service import (
    ChatDataService,
    GuestChatService,
    AuthenticatedChatService,
    ChatServiceFactory,
    InitialData,
    GUEST_ACTIVE_SESSION_KEY,
    active_session_key,
)
from .identity import IdentityProvider

__all__ = [
    'ChatDataService',
    'GuestChatService',
    'AuthenticatedChatService',
    'ChatServiceFactory',
    'InitialData',
    'GUEST_ACTIVE_SESSION_KEY',
    'active_session_key',
    'IdentityProvider',
]
