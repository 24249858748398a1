"""
Pytest configuration for session_client. In-memory SQLite for persisted storage; fakes for
the identity provider and tenant API so no network is touched.
"""
import copy
import os

# In-memory SQLite; database.py uses StaticPool so all connections share the same DB
os.environ["SESSION_STORE_URL"] = "sqlite:///:memory:"

import pytest

from session_client.coordinator import SessionCoordinator
from session_client.database import SessionLocal, init_db
from session_client.flow_store import clear_flows
from session_client.models import StoredItem
from session_client.storage import LocalStorage, SessionStorage
from session_client.tests.support import TENANT_RESPONSE, FakeApi, FakeIdentity


@pytest.fixture
def tenant_response():
    return copy.deepcopy(TENANT_RESPONSE)


@pytest.fixture(autouse=True)
def _reset_pending_flows():
    clear_flows()
    yield
    clear_flows()


@pytest.fixture
def local_storage():
    init_db()
    storage = LocalStorage()
    yield storage
    db = SessionLocal()
    try:
        db.query(StoredItem).delete()
        db.commit()
    finally:
        db.close()


@pytest.fixture
def make_coordinator():
    def _make(identity=None, api=None, local_storage=None, session_storage=None, **kwargs):
        kwargs.setdefault("refresh_buffer_seconds", 60)
        kwargs.setdefault("min_refresh_interval_seconds", 30)
        kwargs.setdefault("rehydrate_delay_seconds", 0.01)
        return SessionCoordinator(
            identity=identity or FakeIdentity(),
            api=api or FakeApi(),
            local_storage=local_storage if local_storage is not None else SessionStorage(),
            session_storage=session_storage if session_storage is not None else SessionStorage(),
            **kwargs,
        )

    return _make
