"""
Service binding model.

Just the data structure - no business logic or class methods.
"""

from sqlalchemy import Column, String

from .db_base import JSON, TimestampMixin
from .db_config import Base


class ServiceBinding(Base, TimestampMixin):
    """A binding's stored parameters and credential payload, keyed by binding id."""

    __tablename__ = "service_bindings"

    binding_id = Column(String(255), primary_key=True)

    # Stored verbatim, never interpreted
    parameters = Column(JSON, nullable=False, default=dict)
    credentials = Column(JSON, nullable=False, default=dict)
