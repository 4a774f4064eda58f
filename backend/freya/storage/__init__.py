"""Storage module - file-backed persistence for users, sessions and small values."""

from .interface import StorageInterface
from .local_storage import LocalStorage
from .key_value import KeyValueStore
from .session_storage import SessionRepository
from .user_storage import UserStorage

__all__ = [
    'StorageInterface',
    'LocalStorage',
    'KeyValueStore',
    'SessionRepository',
    'UserStorage',
]
