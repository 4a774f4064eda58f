"""
Error taxonomy for the chat core.

Plugin failures are never raised through here: the execution pipeline turns
them into error messages. These exceptions cover the conditions that change
control flow (blocking submission, refusing a transition) or that the
persistence layer reports to its callers.
"""

from typing import Optional


class FreyaError(Exception):
    """Base class for all chat-core errors."""


class NoActiveSessionError(FreyaError):
    """A command was submitted while no session is active."""

    def __init__(self, message: str = "No active chat session. Please start a new chat or wait for initialization."):
        super().__init__(message)


class AssistantBusyError(FreyaError):
    """A command or session change was attempted while a command is still running."""

    def __init__(self, message: str = "The assistant is still processing the previous command."):
        super().__init__(message)


class SessionNotFoundError(FreyaError):
    """The requested session does not exist for this identity."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class SessionOwnershipError(FreyaError):
    """Session id or owner does not match the caller."""


class PersistenceError(FreyaError):
    """A durable read or write failed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class AuthError(FreyaError):
    """The caller's credentials or token are missing, invalid or revoked."""
