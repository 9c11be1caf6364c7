"""
User model backing identities issued for service bindings.

Just the data structure - no business logic or class methods.
"""

from sqlalchemy import Column, String

from .db_base import JSON, TimestampMixin
from .db_config import Base


class User(Base, TimestampMixin):
    """Username/password identity scoped by a list of authorities."""

    __tablename__ = "users"

    username = Column(String(255), primary_key=True)
    password_hash = Column(String(255), nullable=False)
    authorities = Column(JSON, nullable=False, default=list)
