"""
Service binding lifecycle.

BindingService decides whether a create request mints a new credential-bearing
binding or returns the stored one, and sequences creation (identity issue,
credential assembly, persistence) and deletion (existence check, record
removal, identity revocation). Every blocking store or issuer call runs on the
worker pool; the event loop only awaits it.

There is no locking and no rollback. Two racing creates of a never-seen id can
both issue an identity and save, and the last save wins. If saving fails after
an identity was issued, that identity is orphaned and a retried create issues
it again.
"""

from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

from ..config import ApplicationInformation, AppConfig, get_config
from ..constants import BOOK_STORE_ID_PREFIX, Authority, BindingOperation
from ..context.operation_context import operation
from ..db.db_config import DatabaseManager
from ..exceptions import (
    BindingNotFoundError,
    BrokerError,
    IdentityIssuerError,
    StorageError,
    validation_failed,
)
from ..repositories.binding_store import BindingStore, SqlBindingStore
from ..schemas.binding_schemas import (
    Absent,
    CreateBindingResponse,
    Found,
    GetBindingResponse,
    ServiceBindingRecord,
)
from ..utils.concurrency import WorkerPool
from ..utils.credential_utils import build_binding_uri, build_credentials
from ..utils.logger import get_logger
from .identity_service import IdentityIssuer, UserIdentityIssuer

T = TypeVar("T")


class BindingService:
    """Create, get and delete service bindings."""

    def __init__(
        self,
        binding_store: BindingStore,
        identity_issuer: IdentityIssuer,
        application_information: ApplicationInformation,
        worker_pool: Optional[WorkerPool] = None,
    ):
        """
        Initialize the binding service.

        Args:
            binding_store: Persistence of binding records
            identity_issuer: Backend minting and revoking binding identities
            application_information: Base-URI provider for connection URIs
            worker_pool: Pool for blocking calls; one sized from config is created if omitted
        """
        self.binding_store = binding_store
        self.identity_issuer = identity_issuer
        self.application_information = application_information
        self._owns_pool = worker_pool is None
        self.worker_pool = worker_pool or WorkerPool(get_config().broker.worker_pool_size)
        self.logger = get_logger()

    @classmethod
    def from_config(
        cls, db_manager: DatabaseManager, config: Optional[AppConfig] = None
    ) -> "BindingService":
        """Wire the SQL-backed store and issuer from application configuration."""
        config = config or get_config()
        service = cls(
            binding_store=SqlBindingStore(db_manager),
            identity_issuer=UserIdentityIssuer(db_manager),
            application_information=config.broker.application,
            worker_pool=WorkerPool(config.broker.worker_pool_size),
        )
        service._owns_pool = True
        return service

    # ==================== COLLABORATOR DISPATCH ====================

    async def _store_call(self, step: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return await self.worker_pool.run(func, *args)
        except BrokerError:
            raise
        except Exception as e:
            raise StorageError(
                f"Binding store {step} failed: {str(e)}", cause=e, step=step
            ) from e

    async def _issuer_call(self, step: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return await self.worker_pool.run(func, *args)
        except BrokerError:
            raise
        except Exception as e:
            raise IdentityIssuerError(
                f"Identity issuer {step} failed: {str(e)}", cause=e, step=step
            ) from e

    @staticmethod
    def _require_identifier(field: str, value: Any) -> None:
        if not isinstance(value, str) or not value.strip():
            raise validation_failed(field, value, "must be a non-empty string")

    # ==================== LIFECYCLE OPERATIONS ====================

    @operation(BindingOperation.CREATE.value)
    async def create_binding(
        self,
        binding_id: str,
        service_instance_id: str,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> CreateBindingResponse:
        """
        Create a binding, or return the stored one if the id is already bound.

        A repeated request for a stored binding id returns the stored
        credentials with binding_existed=True; its own instance id and
        parameters are ignored.

        Args:
            binding_id: Identifier of the binding
            service_instance_id: Bookstore instance the binding grants access to
            parameters: Opaque caller parameters, stored verbatim

        Returns:
            Credential payload and whether the binding already existed

        Raises:
            ValidationError: If an identifier is empty
            StorageError: If the binding store fails
            IdentityIssuerError: If the identity cannot be issued
        """
        self._require_identifier("binding_id", binding_id)
        self._require_identifier("service_instance_id", service_instance_id)

        lookup = await self._store_call("find", self.binding_store.find, binding_id)

        match lookup:
            case Found(record=record):
                self.logger.info("Service binding already exists", extra={"binding_id": binding_id})
                return CreateBindingResponse(credentials=record.credentials, binding_existed=True)
            case Absent():
                credentials = await self._create_new_binding(
                    binding_id, service_instance_id, dict(parameters or {})
                )
                return CreateBindingResponse(credentials=credentials, binding_existed=False)

    async def _create_new_binding(
        self, binding_id: str, service_instance_id: str, parameters: Dict[str, Any]
    ) -> Dict[str, Any]:
        identity = await self._issuer_call(
            "issue",
            self.identity_issuer.issue,
            binding_id,
            Authority.FULL_ACCESS.value,
            BOOK_STORE_ID_PREFIX + service_instance_id,
        )

        uri = build_binding_uri(self.application_information.base_url, service_instance_id)
        credentials = build_credentials(uri, identity.username, identity.password)

        record = ServiceBindingRecord(
            binding_id=binding_id, parameters=parameters, credentials=credentials
        )
        await self._store_call("save", self.binding_store.save, record)

        self.logger.info(
            "Service binding created",
            extra={"binding_id": binding_id, "service_instance_id": service_instance_id, "uri": uri},
        )
        return credentials

    @operation(BindingOperation.GET.value)
    async def get_binding(self, binding_id: str) -> GetBindingResponse:
        """
        Fetch the stored parameters and credentials of a binding.

        Raises:
            BindingNotFoundError: If nothing is stored for binding_id
            StorageError: If the binding store fails
        """
        self._require_identifier("binding_id", binding_id)

        lookup = await self._store_call("find", self.binding_store.find, binding_id)

        match lookup:
            case Found(record=record):
                return GetBindingResponse(
                    parameters=record.parameters, credentials=record.credentials
                )
            case Absent():
                raise BindingNotFoundError(binding_id)

    @operation(BindingOperation.DELETE.value)
    async def delete_binding(self, binding_id: str) -> None:
        """
        Delete a binding and revoke its identity.

        Not idempotent: deleting an id that is not stored fails, telling the
        caller there is nothing left to clean up. The identity is revoked only
        after the record is gone; if revocation fails the record stays deleted.

        Raises:
            BindingNotFoundError: If nothing is stored for binding_id
            StorageError: If the binding store fails
            IdentityIssuerError: If the identity cannot be revoked
        """
        self._require_identifier("binding_id", binding_id)

        exists = await self._store_call("exists", self.binding_store.exists, binding_id)
        if not exists:
            raise BindingNotFoundError(binding_id)

        await self._store_call("delete", self.binding_store.delete, binding_id)
        await self._issuer_call("revoke", self.identity_issuer.revoke, binding_id)

        self.logger.info("Service binding deleted", extra={"binding_id": binding_id})

    def close(self) -> None:
        """Shut down the worker pool if this service created it."""
        if self._owns_pool:
            self.worker_pool.shutdown()
