"""Repositories and the binding store adapter."""

from .base_repository import BaseRepository
from .binding_repository import BindingRepository
from .binding_store import BindingStore, SqlBindingStore
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "BindingRepository",
    "BindingStore",
    "SqlBindingStore",
    "UserRepository",
]
