"""
Repository for users backing issued identities.
"""

from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session

from ..db.db_user_models import User
from .base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    """Persists usernames, password hashes and authorities."""

    def __init__(self, session: Session):
        super().__init__(session, User)

    def get_by_username(self, username: str) -> Optional[User]:
        with self._session_operation("get_by_username", username, is_read_only=True) as session:
            return session.get(User, username)

    def save(self, username: str, password_hash: str, authorities: List[str]) -> None:
        """Create the user, or replace the password and authorities of an existing one."""
        with self._session_operation("save", username):
            self._upsert(
                "username",
                {
                    "username": username,
                    "password_hash": password_hash,
                    "authorities": list(authorities),
                },
            )

    def delete_by_username(self, username: str) -> bool:
        with self._session_operation("delete_by_username", username) as session:
            result = session.execute(delete(User).where(User.username == username))
            return result.rowcount > 0
