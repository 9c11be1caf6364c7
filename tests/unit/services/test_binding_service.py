"""
Tests for BindingService.

Following NO MOCKS policy - tests use the real SQL binding store and the real
users-table identity issuer over SQLite. Recording subclasses only observe
the order of collaborator calls.
"""

import asyncio
import time

import pytest

from bookstore_broker.config import AppConfig, ApplicationInformation, BrokerConfig, set_config
from bookstore_broker.constants import BOOK_STORE_ID_PREFIX, Authority
from bookstore_broker.exceptions import (
    BindingNotFoundError,
    ErrorCode,
    IdentityIssuerError,
    StorageError,
    ValidationError,
    get_correlation_id,
)
from bookstore_broker.repositories.binding_store import SqlBindingStore
from bookstore_broker.repositories.user_repository import UserRepository
from bookstore_broker.schemas.binding_schemas import Absent, Found
from bookstore_broker.schemas.identity_schemas import Identity
from bookstore_broker.services.binding_service import BindingService
from bookstore_broker.services.identity_service import UserIdentityIssuer


class TestCreateBinding:
    """Test create_binding."""

    @pytest.mark.asyncio
    async def test_create_new_binding(self, binding_service, binding_store):
        """A never-seen id gets a fresh identity and a stored record."""
        response = await binding_service.create_binding("b1", "i42", {"plan": "standard"})

        assert response.binding_existed is False
        assert set(response.credentials) == {"uri", "username", "password"}

        match binding_store.find("b1"):
            case Found(record=record):
                assert record.parameters == {"plan": "standard"}
                assert record.credentials == response.credentials
            case Absent():
                pytest.fail("binding was not stored")

    @pytest.mark.asyncio
    async def test_credential_shape(self, binding_service, identity_issuer):
        """Credentials carry the bookstore URI and the issued username/password."""
        response = await binding_service.create_binding("b1", "i42")

        assert len(identity_issuer.issued) == 1
        issued = identity_issuer.issued[0]
        credentials = response.credentials
        assert credentials["uri"] == "https://host/bookstores/i42"
        assert credentials["username"] == issued.username
        assert credentials["password"] == issued.password
        assert identity_issuer.authenticate(issued.username, credentials["password"]) is True

    @pytest.mark.asyncio
    async def test_credentials_use_issued_username(self, binding_store, application_information, worker_pool, db_manager):
        """The username comes from the issued identity, not from the binding id."""

        class PrefixingIssuer(UserIdentityIssuer):
            def issue(self, identifier, access_level, resource_tag):
                identity = super().issue(identifier, access_level, resource_tag)
                return Identity(
                    username=f"svc-{identity.username}",
                    password=identity.password,
                    authorities=identity.authorities,
                )

        service = BindingService(
            binding_store, PrefixingIssuer(db_manager), application_information, worker_pool
        )

        response = await service.create_binding("b1", "i42")

        assert response.credentials["username"] == "svc-b1"

    @pytest.mark.asyncio
    async def test_issued_identity_authorities(self, binding_service, db_manager):
        """The identity is scoped to full access on the bound bookstore instance."""
        await binding_service.create_binding("b1", "i42")

        with db_manager.session_scope() as session:
            user = UserRepository(session).get_by_username("b1")
            authorities = list(user.authorities)

        assert authorities == [Authority.FULL_ACCESS.value, BOOK_STORE_ID_PREFIX + "i42"]

    @pytest.mark.asyncio
    async def test_create_is_idempotent(self, binding_service, events):
        """A repeated create returns the stored credentials and has no side effects."""
        first = await binding_service.create_binding("b1", "i42", {"plan": "standard"})
        events.clear()

        second = await binding_service.create_binding("b1", "i99", {"plan": "premium"})

        assert second.binding_existed is True
        assert second.credentials == first.credentials
        assert events == [("store.find", "b1")]

    @pytest.mark.asyncio
    async def test_repeated_create_ignores_new_parameters(self, binding_service):
        """The stored parameters are those of the first create."""
        await binding_service.create_binding("b1", "i42", {"plan": "standard"})
        await binding_service.create_binding("b1", "i99", {"plan": "premium"})

        response = await binding_service.get_binding("b1")
        assert response.parameters == {"plan": "standard"}
        assert response.credentials["uri"] == "https://host/bookstores/i42"

    @pytest.mark.asyncio
    async def test_create_call_order(self, binding_service, events):
        """Create looks up, issues, then saves."""
        await binding_service.create_binding("b1", "i42")

        assert events == [
            ("store.find", "b1"),
            ("issuer.issue", "b1"),
            ("store.save", "b1"),
        ]

    @pytest.mark.asyncio
    async def test_parameters_default_to_empty(self, binding_service):
        """Omitted parameters are stored as an empty mapping."""
        await binding_service.create_binding("b1", "i42")

        response = await binding_service.get_binding("b1")
        assert response.parameters == {}

    @pytest.mark.asyncio
    async def test_instance_id_is_path_encoded(self, binding_service):
        """An instance id cannot add path levels to the URI."""
        response = await binding_service.create_binding("b1", "a/b c")

        assert response.credentials["uri"] == "https://host/bookstores/a%2Fb%20c"

    @pytest.mark.asyncio
    async def test_create_validation_errors(self, binding_service, events):
        """Blank identifiers fail before any collaborator call."""
        with pytest.raises(ValidationError) as exc_info:
            await binding_service.create_binding("", "i42")
        assert "Validation failed for binding_id" in str(exc_info.value)

        with pytest.raises(ValidationError) as exc_info:
            await binding_service.create_binding("b1", "   ")
        assert "Validation failed for service_instance_id" in str(exc_info.value)

        with pytest.raises(ValidationError):
            await binding_service.create_binding(None, "i42")

        assert events == []

    @pytest.mark.asyncio
    async def test_racing_creates_last_write_wins(self, binding_service, binding_store):
        """Concurrent creates of a new id both succeed and one record survives."""
        first, second = await asyncio.gather(
            binding_service.create_binding("b1", "i1"),
            binding_service.create_binding("b1", "i2"),
        )

        stored = binding_store.find("b1")
        assert isinstance(stored, Found)
        assert stored.record.credentials in (first.credentials, second.credentials)


class TestGetBinding:
    """Test get_binding."""

    @pytest.mark.asyncio
    async def test_get_reflects_create(self, binding_service):
        """Get returns exactly what create stored."""
        created = await binding_service.create_binding("b1", "i42", {"plan": "standard"})

        response = await binding_service.get_binding("b1")

        assert response.parameters == {"plan": "standard"}
        assert response.credentials == created.credentials

    @pytest.mark.asyncio
    async def test_get_unknown_binding(self, binding_service):
        """An unknown id fails with not-found, not a storage fault."""
        with pytest.raises(BindingNotFoundError) as exc_info:
            await binding_service.get_binding("missing")

        assert exc_info.value.binding_id == "missing"
        assert exc_info.value.error_code == ErrorCode.NOT_FOUND
        assert exc_info.value.status_code == 404
        assert not isinstance(exc_info.value, StorageError)

    @pytest.mark.asyncio
    async def test_get_has_no_side_effects(self, binding_service, events):
        """Get only reads from the store."""
        await binding_service.create_binding("b1", "i42")
        events.clear()

        await binding_service.get_binding("b1")

        assert events == [("store.find", "b1")]

    @pytest.mark.asyncio
    async def test_not_found_is_enriched_with_operation(self, binding_service):
        """Errors carry the name of the failing operation."""
        with pytest.raises(BindingNotFoundError) as exc_info:
            await binding_service.get_binding("missing")

        assert exc_info.value.context["operation_name"] == "get_binding"
        assert "operation_id" in exc_info.value.context
        assert "correlation_id" in exc_info.value.context


class TestDeleteBinding:
    """Test delete_binding."""

    @pytest.mark.asyncio
    async def test_delete_then_get(self, binding_service):
        """A deleted binding is gone."""
        await binding_service.create_binding("b1", "i42")

        await binding_service.delete_binding("b1")

        with pytest.raises(BindingNotFoundError):
            await binding_service.get_binding("b1")

    @pytest.mark.asyncio
    async def test_delete_revokes_identity(self, binding_service, identity_issuer):
        """The binding's identity no longer authenticates after delete."""
        created = await binding_service.create_binding("b1", "i42")
        password = created.credentials["password"]

        await binding_service.delete_binding("b1")

        assert identity_issuer.authenticate("b1", password) is False

    @pytest.mark.asyncio
    async def test_revoke_after_delete(self, binding_service, events):
        """Revocation happens only after the record is deleted."""
        await binding_service.create_binding("b1", "i42")
        events.clear()

        await binding_service.delete_binding("b1")

        assert events == [
            ("store.exists", "b1"),
            ("store.delete", "b1"),
            ("issuer.revoke", "b1"),
        ]

    @pytest.mark.asyncio
    async def test_delete_is_not_idempotent(self, binding_service):
        """A second delete of the same id fails with not-found."""
        await binding_service.create_binding("b1", "i42")
        await binding_service.delete_binding("b1")

        with pytest.raises(BindingNotFoundError):
            await binding_service.delete_binding("b1")

    @pytest.mark.asyncio
    async def test_delete_unknown_does_not_revoke(self, binding_service, events):
        """Nothing is deleted or revoked when the binding does not exist."""
        with pytest.raises(BindingNotFoundError):
            await binding_service.delete_binding("missing")

        assert events == [("store.exists", "missing")]

    @pytest.mark.asyncio
    async def test_delete_validation_error(self, binding_service, events):
        """A blank id fails before any collaborator call."""
        with pytest.raises(ValidationError):
            await binding_service.delete_binding("")

        assert events == []

    @pytest.mark.asyncio
    async def test_recreate_after_delete(self, binding_service):
        """A deleted id can be bound again with fresh credentials."""
        first = await binding_service.create_binding("b1", "i42")
        await binding_service.delete_binding("b1")

        second = await binding_service.create_binding("b1", "i43")

        assert second.binding_existed is False
        assert second.credentials["uri"] == "https://host/bookstores/i43"
        assert second.credentials["password"] != first.credentials["password"]


# ==================== FAILURE PROPAGATION ====================


class FailingSaveStore(SqlBindingStore):
    def save(self, record):
        raise RuntimeError("disk full")


class FailingIssuer(UserIdentityIssuer):
    def issue(self, identifier, access_level, resource_tag):
        raise RuntimeError("directory unavailable")


class FailingRevokeIssuer(UserIdentityIssuer):
    def revoke(self, identifier):
        raise IdentityIssuerError("revocation refused", identifier=identifier)


class SlowIssuer(UserIdentityIssuer):
    def issue(self, identifier, access_level, resource_tag):
        time.sleep(0.3)
        return super().issue(identifier, access_level, resource_tag)


class TestFailurePropagation:
    """Test how collaborator failures reach the caller."""

    @pytest.fixture(scope="function")
    def make_service(self, db_manager, application_information, worker_pool):
        """Build a service around the given store/issuer classes."""

        def _make(store_cls=SqlBindingStore, issuer_cls=UserIdentityIssuer):
            return BindingService(
                binding_store=store_cls(db_manager),
                identity_issuer=issuer_cls(db_manager),
                application_information=application_information,
                worker_pool=worker_pool,
            )

        return _make

    @pytest.mark.asyncio
    async def test_store_failure_is_wrapped(self, make_service):
        """A non-broker store exception surfaces once as StorageError."""
        service = make_service(store_cls=FailingSaveStore)

        with pytest.raises(StorageError) as exc_info:
            await service.create_binding("b1", "i42")

        assert isinstance(exc_info.value.cause, RuntimeError)
        assert exc_info.value.context["step"] == "save"
        assert exc_info.value.context["operation_name"] == "create_binding"

    @pytest.mark.asyncio
    async def test_save_failure_orphans_identity(self, make_service, db_manager):
        """An identity issued before a failed save is not rolled back."""
        service = make_service(store_cls=FailingSaveStore)

        with pytest.raises(StorageError):
            await service.create_binding("b1", "i42")

        with db_manager.session_scope() as session:
            assert UserRepository(session).get_by_username("b1") is not None

        # A retry re-issues the orphaned identity and succeeds
        retry = make_service()
        response = await retry.create_binding("b1", "i42")
        assert response.binding_existed is False
        assert retry.identity_issuer.authenticate("b1", response.credentials["password"])

    @pytest.mark.asyncio
    async def test_issuer_failure_is_wrapped(self, make_service, db_manager):
        """A non-broker issuer exception surfaces as IdentityIssuerError and nothing is stored."""
        service = make_service(issuer_cls=FailingIssuer)

        with pytest.raises(IdentityIssuerError) as exc_info:
            await service.create_binding("b1", "i42")

        assert exc_info.value.status_code == 502
        assert exc_info.value.context["service_name"] == "identity_issuer"
        assert isinstance(SqlBindingStore(db_manager).find("b1"), Absent)

    @pytest.mark.asyncio
    async def test_broker_errors_pass_through(self, make_service):
        """An issuer raising a broker error is not wrapped again."""
        service = make_service(issuer_cls=FailingRevokeIssuer)
        await service.create_binding("b1", "i42")

        with pytest.raises(IdentityIssuerError) as exc_info:
            await service.delete_binding("b1")

        assert exc_info.value.message == "revocation refused"
        assert exc_info.value.cause is None

    @pytest.mark.asyncio
    async def test_failed_revoke_keeps_record_deleted(self, make_service):
        """When revocation fails the binding record stays deleted."""
        service = make_service(issuer_cls=FailingRevokeIssuer)
        await service.create_binding("b1", "i42")

        with pytest.raises(IdentityIssuerError):
            await service.delete_binding("b1")

        with pytest.raises(BindingNotFoundError):
            await service.get_binding("b1")

    @pytest.mark.asyncio
    async def test_deadline_does_not_roll_back(self, make_service, worker_pool, db_manager):
        """A caller deadline aborts create without undoing the issued identity."""
        service = make_service(issuer_cls=SlowIssuer)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(service.create_binding("b1", "i42"), timeout=0.05)

        # Let the in-flight issue call finish
        worker_pool.shutdown(wait=True)

        with db_manager.session_scope() as session:
            assert UserRepository(session).get_by_username("b1") is not None
        assert isinstance(SqlBindingStore(db_manager).find("b1"), Absent)


class TestServiceWiring:
    """Test construction and correlation behaviour."""

    @pytest.mark.asyncio
    async def test_from_config(self, db_manager):
        """from_config wires the SQL collaborators and a pool sized from config."""
        config = AppConfig(
            broker=BrokerConfig(
                worker_pool_size=2,
                application=ApplicationInformation(base_url="https://books.example.com/"),
            )
        )

        service = BindingService.from_config(db_manager, config)
        try:
            assert isinstance(service.binding_store, SqlBindingStore)
            assert isinstance(service.identity_issuer, UserIdentityIssuer)
            assert service.worker_pool.max_workers == 2

            response = await service.create_binding("b1", "i42")
            assert response.credentials["uri"] == "https://books.example.com/bookstores/i42"
        finally:
            service.close()

    def test_default_pool_from_global_config(self, binding_store, identity_issuer):
        """Without a pool the service creates one sized from the global config."""
        set_config(AppConfig(broker=BrokerConfig(worker_pool_size=3)))

        service = BindingService(
            binding_store, identity_issuer, ApplicationInformation(base_url="https://host")
        )
        try:
            assert service.worker_pool.max_workers == 3
        finally:
            service.close()

    @pytest.mark.asyncio
    async def test_correlation_id_reaches_worker_threads(self, db_manager, application_information, worker_pool):
        """Collaborator calls on the pool see the operation's correlation id."""
        seen = []

        class CorrelationRecordingStore(SqlBindingStore):
            def find(self, binding_id):
                seen.append(get_correlation_id())
                return super().find(binding_id)

        service = BindingService(
            CorrelationRecordingStore(db_manager),
            UserIdentityIssuer(db_manager),
            application_information,
            worker_pool,
        )

        await service.create_binding("b1", "i42")

        assert len(seen) == 1
        assert seen[0] is not None
        # Restored once the operation is over
        assert get_correlation_id() is None
