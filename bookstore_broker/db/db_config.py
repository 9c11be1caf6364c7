"""
Database configuration and connection management.

The broker runs on PostgreSQL in production and on SQLite in development and
tests. Sessions are scoped per thread: every worker-pool thread that touches
the database gets its own session. An in-memory SQLite database lives on a
single connection, so its units of work are serialized across threads.
"""

import os
import threading
from contextlib import contextmanager, nullcontext
from typing import Any, Dict, Iterator, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.orm import Session, declarative_base, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..exceptions import ErrorCode, ServiceError, ValidationError
from ..utils import get_logger

# Declarative base of the broker's tables
Base: Any = declarative_base()

_SQLITE_MEMORY = ":memory:"


class DatabaseConfig(BaseModel):
    """Connection settings for PostgreSQL (`postgres`) or SQLite (`sqlite`)."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    db_type: str = "postgres"
    database: str
    host: str = ""
    port: str = "5432"
    username: str = ""
    password: str = ""
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    echo: bool = False
    development_mode: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.db_type.lower() == "sqlite"

    @property
    def is_sqlite_memory(self) -> bool:
        return self.is_sqlite and self.database == _SQLITE_MEMORY

    def get_connection_string(self) -> str:
        """
        SQLAlchemy URL for this configuration.

        Raises:
            ValidationError: If a Postgres setting is missing or db_type is unknown
        """
        if self.is_sqlite:
            return f"sqlite:///{self.database}"

        if self.db_type.lower() != "postgres":
            raise ValidationError(
                f"Unsupported database type: {self.db_type}",
                field="db_type",
                error_code=ErrorCode.INVALID_FORMAT,
                value=self.db_type,
            )

        missing = [
            name
            for name in ("host", "database", "username", "password")
            if not getattr(self, name)
        ]
        if missing:
            raise ValidationError(
                "Missing required Postgres configuration parameters",
                field="database_config",
                error_code=ErrorCode.MISSING_REQUIRED,
                missing=missing,
            )

        url = URL.create(
            "postgresql",
            username=self.username,
            password=self.password,
            host=self.host,
            port=int(self.port),
            database=self.database,
        )
        return url.render_as_string(hide_password=False)

    def __repr__(self) -> str:
        return (
            f"DatabaseConfig(db_type='{self.db_type}', host='{self.host}', "
            f"port='{self.port}', database='{self.database}', "
            f"username='{self.username}', password='***')"
        )


class DatabaseManager:
    """Owns the engine and the thread-scoped session registry."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.engine = self._create_engine()
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.scoped_session = scoped_session(self.session_factory)
        # StaticPool hands every thread the same connection
        self._unit_lock = threading.RLock() if config.is_sqlite_memory else nullcontext()

    def _engine_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"echo": self.config.echo}
        if not self.config.is_sqlite:
            options.update(
                pool_size=self.config.pool_size,
                max_overflow=self.config.max_overflow,
                pool_timeout=self.config.pool_timeout,
            )
            return options

        options["connect_args"] = {"check_same_thread": False}
        if self.config.is_sqlite_memory:
            # Every new connection would open a separate, empty in-memory database
            options["poolclass"] = StaticPool
        return options

    def _create_engine(self) -> Engine:
        return create_engine(self.config.get_connection_string(), **self._engine_options())

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop every table; refused outside development mode."""
        if not self.config.development_mode:
            raise ServiceError(
                "Cannot drop tables: not in development mode",
                error_code=ErrorCode.CONFIGURATION_ERROR,
                operation="drop_tables",
            )
        Base.metadata.drop_all(self.engine)

    def get_session(self) -> Session:
        return self.scoped_session()

    def close_session(self, session: Optional[Session] = None) -> None:
        if session is not None:
            session.close()
        else:
            self.scoped_session.remove()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        One unit of work in the calling thread's session.

        Commits when the block completes, rolls back when it raises, and
        removes the thread's session either way. Units of work on an in-memory
        SQLite database run one at a time.
        """
        with self._unit_lock:
            session = self.get_session()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                self.close_session()

    def close(self) -> None:
        self.scoped_session.remove()
        self.engine.dispose()


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "false").lower() == "true"


def get_development_config() -> DatabaseConfig:
    """SQLite at DEV_DB_PATH, in memory when unset."""
    return DatabaseConfig(
        db_type="sqlite",
        database=os.environ.get("DEV_DB_PATH", _SQLITE_MEMORY),
        echo=_env_flag("DB_ECHO"),
        development_mode=True,
    )


def get_production_config() -> DatabaseConfig:
    """Postgres from the DB_* environment variables."""
    env = os.environ
    return DatabaseConfig(
        db_type="postgres",
        host=env.get("DB_HOST", "localhost"),
        port=env.get("DB_PORT", "5432"),
        database=env.get("DB_NAME", "bookstore_broker"),
        username=env.get("DB_USER", "postgres"),
        password=env.get("DB_PASSWORD", ""),
        pool_size=int(env.get("DB_POOL_SIZE", "5")),
        max_overflow=int(env.get("DB_MAX_OVERFLOW", "10")),
        pool_timeout=int(env.get("DB_POOL_TIMEOUT", "30")),
        echo=_env_flag("DB_ECHO"),
        development_mode=False,
    )


def import_all_models() -> None:
    """Register every table on Base.metadata."""
    from sqlalchemy.orm import configure_mappers

    from .db_binding_models import ServiceBinding  # noqa: F401
    from .db_user_models import User  # noqa: F401

    configure_mappers()


# ==================== PROCESS-GLOBAL MANAGER ====================

_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """
    The process-global database manager.

    Raises:
        ServiceError: If initialize_db() has not been called
    """
    if _db_manager is None:
        raise ServiceError(
            "Database manager not initialized. Call initialize_db() first.",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            operation="get_db_manager",
        )
    return _db_manager


def set_db_manager(manager: Optional[DatabaseManager]) -> None:
    """Install (or clear) the process-global database manager."""
    global _db_manager
    _db_manager = manager


def initialize_db(config: Optional[DatabaseConfig] = None) -> DatabaseManager:
    """
    Create the process-global manager and its tables.

    Uses the production config from the environment when config is None.
    """
    config = config or get_production_config()
    manager = DatabaseManager(config)

    get_logger().info("Initializing database", extra={"db_type": config.db_type})
    import_all_models()
    manager.create_tables()

    set_db_manager(manager)
    return manager


def close_db() -> None:
    """Dispose of the process-global manager, if any."""
    global _db_manager
    if _db_manager is not None:
        _db_manager.close()
        _db_manager = None
