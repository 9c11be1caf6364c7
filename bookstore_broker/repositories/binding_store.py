"""
Binding store adapter.

Key-value persistence of binding records keyed by binding id. Implementations
are blocking; the binding service dispatches every call to its worker pool.
"""

from contextlib import contextmanager
from typing import Iterator, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from ..db.db_config import DatabaseManager
from ..exceptions import BrokerError, StorageError
from ..schemas.binding_schemas import Absent, BindingLookup, Found, ServiceBindingRecord
from ..utils.logger import get_logger
from .binding_repository import BindingRepository


@runtime_checkable
class BindingStore(Protocol):
    """Persistence contract consumed by the binding service."""

    def exists(self, binding_id: str) -> bool:
        """True iff a record with that id is stored."""
        ...

    def find(self, binding_id: str) -> BindingLookup:
        """Found(record) or Absent(binding_id); never fails for a missing key."""
        ...

    def save(self, record: ServiceBindingRecord) -> None:
        """Upsert; overwrites any stored record with the same id."""
        ...

    def delete(self, binding_id: str) -> None:
        """Remove the record if present; no-op otherwise."""
        ...


class SqlBindingStore:
    """
    BindingStore backed by the service_bindings table.

    Each call is its own unit of work in the calling thread's session:
    committed on success, rolled back on failure. Failures surface as
    StorageError and are never retried.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.logger = get_logger()

    @contextmanager
    def _unit_of_work(self, operation_name: str, binding_id: str) -> Iterator[Session]:
        try:
            with self.db_manager.session_scope() as session:
                yield session
        except BrokerError:
            raise
        except Exception as e:
            # Commit/connection failures raised outside the repository
            raise StorageError(
                f"Binding store {operation_name} failed: {str(e)}",
                cause=e,
                operation_name=operation_name,
                binding_id=binding_id,
            ) from e

    def exists(self, binding_id: str) -> bool:
        with self._unit_of_work("exists", binding_id) as session:
            return BindingRepository(session).exists_by_id(binding_id)

    def find(self, binding_id: str) -> BindingLookup:
        with self._unit_of_work("find", binding_id) as session:
            record = BindingRepository(session).find_by_id(binding_id)
        if record is None:
            return Absent(binding_id=binding_id)
        return Found(record=record)

    def save(self, record: ServiceBindingRecord) -> None:
        with self._unit_of_work("save", record.binding_id) as session:
            BindingRepository(session).save(record)

    def delete(self, binding_id: str) -> None:
        with self._unit_of_work("delete", binding_id) as session:
            BindingRepository(session).delete_by_id(binding_id)
