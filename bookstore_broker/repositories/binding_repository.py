"""
Repository for service binding records.
"""

from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..db.db_binding_models import ServiceBinding
from ..schemas.binding_schemas import ServiceBindingRecord
from .base_repository import BaseRepository


class BindingRepository(BaseRepository[ServiceBinding]):
    """Point lookups, upserts and deletes of ServiceBinding rows by binding id."""

    def __init__(self, session: Session):
        super().__init__(session, ServiceBinding)

    def exists_by_id(self, binding_id: str) -> bool:
        with self._session_operation("exists_by_id", binding_id, is_read_only=True) as session:
            query = select(ServiceBinding.binding_id).where(ServiceBinding.binding_id == binding_id)
            return session.execute(query).first() is not None

    def find_by_id(self, binding_id: str) -> Optional[ServiceBindingRecord]:
        with self._session_operation("find_by_id", binding_id, is_read_only=True) as session:
            binding = session.get(ServiceBinding, binding_id)
            if binding is None:
                return None
            return ServiceBindingRecord.model_validate(binding)

    def save(self, record: ServiceBindingRecord) -> None:
        """Insert the record, or overwrite the stored one with the same binding id."""
        with self._session_operation("save", record.binding_id):
            self._upsert(
                "binding_id",
                {
                    "binding_id": record.binding_id,
                    "parameters": dict(record.parameters),
                    "credentials": dict(record.credentials),
                },
            )

        self.logger.debug("Saved service binding", extra={"binding_id": record.binding_id})

    def delete_by_id(self, binding_id: str) -> bool:
        """
        Delete the binding row if present.

        Returns:
            True if a row was deleted, False if none was stored
        """
        with self._session_operation("delete_by_id", binding_id) as session:
            result = session.execute(
                delete(ServiceBinding).where(ServiceBinding.binding_id == binding_id)
            )
            deleted = result.rowcount > 0

        self.logger.debug(
            "Deleted service binding" if deleted else "No service binding to delete",
            extra={"binding_id": binding_id},
        )
        return deleted
