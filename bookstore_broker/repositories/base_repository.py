"""
Shared plumbing of the broker's repositories.

Repositories work inside a session someone else owns (the caller's unit of
work) and translate every database failure into a StorageError.
"""

from contextlib import contextmanager
from typing import Any, Dict, Generic, Iterator, NoReturn, Optional, Type, TypeVar

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.db_base import utc_now
from ..exceptions import ErrorCode, RepositoryError, StorageError
from ..utils.logger import get_logger

T = TypeVar("T")

# Most specific first
_ERROR_CODES = (
    (IntegrityError, ErrorCode.CONSTRAINT_VIOLATION, "constraint violation"),
    (SQLAlchemyError, ErrorCode.DATABASE_ERROR, "database error"),
    (Exception, ErrorCode.INTERNAL_ERROR, "unexpected error"),
)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {"postgresql": postgresql_insert, "sqlite": sqlite_insert}


class BaseRepository(Generic[T]):
    """Session-bound repository of one model class."""

    def __init__(self, session: Session, entity_class: Type[T]):
        self.session = session
        self.entity_class = entity_class
        self.entity_name = entity_class.__name__
        self.logger = get_logger()

    def _handle_db_error(
        self,
        e: Exception,
        operation_name: str,
        entity_id: Optional[str] = None,
        **context: Any,
    ) -> NoReturn:
        """
        Re-raise e as a StorageError.

        Errors that are already repository errors keep their code. Integrity
        violations map to CONSTRAINT_VIOLATION, other SQLAlchemy errors to
        DATABASE_ERROR and anything else to INTERNAL_ERROR.
        """
        if isinstance(e, RepositoryError):
            raise e

        error_code, label = next(
            (code, label) for exc_type, code, label in _ERROR_CODES if isinstance(e, exc_type)
        )
        error_context: Dict[str, Any] = {
            "operation_name": operation_name,
            "entity_type": self.entity_name,
            **context,
        }
        if entity_id:
            error_context["entity_id"] = entity_id

        log = self.logger.warning if error_code == ErrorCode.CONSTRAINT_VIOLATION else self.logger.error
        log(f"{self.entity_name} {operation_name} failed: {label}", extra=error_context)

        raise StorageError(
            f"{self.entity_name} {operation_name} failed ({label}): {e}",
            error_code=error_code,
            cause=e,
            **error_context,
        ) from e

    @contextmanager
    def _session_operation(
        self, operation_name: str, entity_id: Optional[str] = None, is_read_only: bool = False
    ) -> Iterator[Session]:
        """
        Run a repository step on the caller's session.

        Write steps are flushed so database errors surface here rather than at
        the caller's commit. Commit and rollback stay with the caller.
        """
        try:
            yield self.session
            if not is_read_only:
                self.session.flush()
        except Exception as e:
            self._handle_db_error(e, operation_name, entity_id)

    def _upsert(self, key_column: str, values: Dict[str, Any]) -> None:
        """
        Insert a row or overwrite the row with the same key in one statement.

        Concurrent writers of the same key never collide on the primary key;
        the last write wins.
        """
        now = utc_now()
        values = {**values, "created_at": now, "updated_at": now}
        kept_on_conflict = (key_column, "created_at")

        insert = _UPSERT_INSERTS.get(self.session.get_bind().dialect.name)
        if insert is not None:
            stmt = insert(self.entity_class).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[key_column],
                set_={
                    column: getattr(stmt.excluded, column)
                    for column in values
                    if column not in kept_on_conflict
                },
            )
            self.session.execute(stmt)
            return

        entity = self.session.get(self.entity_class, values[key_column])
        if entity is None:
            self.session.add(self.entity_class(**values))
            return
        for column, value in values.items():
            if column not in kept_on_conflict:
                setattr(entity, column, value)
