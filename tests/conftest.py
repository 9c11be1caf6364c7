"""
Test fixtures shared by all broker tests.

Tests use a real SQLite database file per test. A file rather than :memory:
keeps the setup close to production: worker-pool threads open their own
connections and see each other's committed writes.
"""

import pytest

from bookstore_broker.config import reset_config
from bookstore_broker.db import DatabaseConfig, DatabaseManager, import_all_models
from bookstore_broker.exceptions import clear_correlation_id
from bookstore_broker.utils.logger import reset_logging


@pytest.fixture(autouse=True)
def clean_globals():
    """Reset global configuration, logger and correlation id around every test."""
    reset_config()
    reset_logging()
    clear_correlation_id()
    yield
    reset_config()
    reset_logging()
    clear_correlation_id()


@pytest.fixture(scope="function")
def db_config(tmp_path) -> DatabaseConfig:
    """SQLite configuration pointing at a fresh database file."""
    return DatabaseConfig(
        db_type="sqlite",
        database=str(tmp_path / "broker.db"),
        echo=False,
        development_mode=True,
    )


@pytest.fixture(scope="function")
def db_manager(db_config: DatabaseConfig):
    """Database manager with all tables created."""
    import_all_models()

    manager = DatabaseManager(db_config)
    manager.create_tables()

    yield manager

    manager.drop_tables()
    manager.close()
