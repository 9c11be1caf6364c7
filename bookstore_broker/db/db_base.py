"""
Column types and mixins shared by the broker's tables.

Binding parameters and credentials are opaque JSON documents. PostgreSQL
stores them as JSONB; SQLite stores them as serialized text.
"""

import json
from datetime import UTC, datetime

from pydantic_core import to_jsonable_python
from sqlalchemy import Column, DateTime, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(UTC)


class JSON(TypeDecorator):
    """JSON document column: JSONB on PostgreSQL, text elsewhere."""

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        impl = JSONB() if dialect.name == "postgresql" else Text()
        return dialect.type_descriptor(impl)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        document = to_jsonable_python(value)
        return document if dialect.name == "postgresql" else json.dumps(document)

    def process_result_value(self, value, dialect):
        if value is None or dialect.name == "postgresql":
            return value
        return json.loads(value)


class TimestampMixin:
    """created_at/updated_at columns maintained on insert and update."""

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
