"""Core module - chat state machine, execution pipeline and session lifecycle."""

from .errors import (
    FreyaError,
    NoActiveSessionError,
    AssistantBusyError,
    SessionNotFoundError,
    SessionOwnershipError,
    PersistenceError,
    AuthError,
)

__all__ = [
    'FreyaError',
    'NoActiveSessionError',
    'AssistantBusyError',
    'SessionNotFoundError',
    'SessionOwnershipError',
    'PersistenceError',
    'AuthError',
]
