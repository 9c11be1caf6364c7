"""
SQLAlchemy models and database configuration for the broker.

This module provides a common entry point for all models.
"""

# Import base definitions
from .db_base import JSON, TimestampMixin, utc_now

# Import configuration
from .db_config import (
    Base,
    DatabaseConfig,
    DatabaseManager,
    close_db,
    get_db_manager,
    get_development_config,
    get_production_config,
    import_all_models,
    initialize_db,
    set_db_manager,
)

# Import models
from .db_binding_models import ServiceBinding
from .db_user_models import User

__all__ = [
    # Base definitions
    "Base",
    "JSON",
    "TimestampMixin",
    "utc_now",
    # Configuration
    "DatabaseConfig",
    "DatabaseManager",
    "close_db",
    "get_db_manager",
    "get_development_config",
    "get_production_config",
    "import_all_models",
    "initialize_db",
    "set_db_manager",
    # Models
    "ServiceBinding",
    "User",
]
