"""
Unit test conftest.py - Component-specific fixtures.

This module provides fixtures specific to unit testing:
- Binding store and identity issuer over the test database
- Binding service wired to a small worker pool
- Recording collaborators that log the order of calls they receive
"""

from typing import List

import pytest

from bookstore_broker.config import ApplicationInformation
from bookstore_broker.repositories.binding_store import SqlBindingStore
from bookstore_broker.schemas.identity_schemas import Identity
from bookstore_broker.services.binding_service import BindingService
from bookstore_broker.services.identity_service import UserIdentityIssuer
from bookstore_broker.utils.concurrency import WorkerPool

TEST_BASE_URL = "https://host"


# ==================== RECORDING COLLABORATORS ====================
# Real store and issuer that also append each call to a shared event list


class RecordingBindingStore(SqlBindingStore):
    def __init__(self, db_manager, events: List[tuple]):
        super().__init__(db_manager)
        self.events = events

    def exists(self, binding_id):
        self.events.append(("store.exists", binding_id))
        return super().exists(binding_id)

    def find(self, binding_id):
        self.events.append(("store.find", binding_id))
        return super().find(binding_id)

    def save(self, record):
        self.events.append(("store.save", record.binding_id))
        return super().save(record)

    def delete(self, binding_id):
        self.events.append(("store.delete", binding_id))
        return super().delete(binding_id)


class RecordingIdentityIssuer(UserIdentityIssuer):
    def __init__(self, db_manager, events: List[tuple]):
        super().__init__(db_manager)
        self.events = events
        self.issued: List[Identity] = []

    def issue(self, identifier, access_level, resource_tag):
        self.events.append(("issuer.issue", identifier))
        identity = super().issue(identifier, access_level, resource_tag)
        self.issued.append(identity)
        return identity

    def revoke(self, identifier):
        self.events.append(("issuer.revoke", identifier))
        return super().revoke(identifier)


# ==================== COLLABORATOR FIXTURES ====================


@pytest.fixture(scope="function")
def application_information() -> ApplicationInformation:
    """Base-URI provider for https://host."""
    return ApplicationInformation(base_url=TEST_BASE_URL)


@pytest.fixture(scope="function")
def worker_pool():
    """Small worker pool, shut down after the test."""
    pool = WorkerPool(max_workers=4)
    yield pool
    pool.shutdown()


@pytest.fixture(scope="function")
def events() -> List[tuple]:
    """Shared call log of the recording collaborators."""
    return []


@pytest.fixture(scope="function")
def binding_store(db_manager, events):
    """Recording SQL binding store over the test database."""
    return RecordingBindingStore(db_manager, events)


@pytest.fixture(scope="function")
def identity_issuer(db_manager, events):
    """Recording users-table identity issuer over the test database."""
    return RecordingIdentityIssuer(db_manager, events)


# ==================== SERVICE FIXTURES ====================


@pytest.fixture(scope="function")
def binding_service(binding_store, identity_issuer, application_information, worker_pool):
    """Binding service wired to the recording collaborators."""
    return BindingService(
        binding_store=binding_store,
        identity_issuer=identity_issuer,
        application_information=application_information,
        worker_pool=worker_pool,
    )
