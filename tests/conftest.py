"""
Shared fixtures.

Every test runs against the in-memory Record Store and blob store.
No network, no real Google Sheets / Mindee / Plaid calls.
"""

import pytest

from moneyquest.config import EngineSettings
from moneyquest.engine import LocalDataEngine
from moneyquest.services.backup import BackupService, InMemoryBlobStore
from moneyquest.services.storage import InMemoryRecordStore
from moneyquest.subscription import SubscriptionManager, SubscriptionStatus

from tests.factories import TODAY, USER_ID


@pytest.fixture
def store():
    return InMemoryRecordStore(today=lambda: TODAY)


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def backup_service(blob_store):
    return BackupService(USER_ID, blob_store)


@pytest.fixture
def make_engine(store, backup_service):
    """Build an engine on the shared store for a given tier/status."""
    def _make(tier: str = "free", status: str = "active", **kwargs) -> LocalDataEngine:
        kwargs.setdefault("store", store)
        kwargs.setdefault("backup_service", backup_service)
        return LocalDataEngine(
            subscription=SubscriptionManager(SubscriptionStatus(tier=tier, status=status)),
            settings=EngineSettings(),
            user_id=USER_ID,
            **kwargs,
        )
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()
