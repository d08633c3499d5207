"""
Shared fixtures.

Everything runs against the in-memory document store: no network, no
credentials.
"""

import pytest

from finance_tracker.config import AppSettings
from finance_tracker.orchestrator import FinanceTracker
from finance_tracker.services.storage import InMemoryDocumentStore


USER_ID = "user-123"


@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def settings():
    return AppSettings(_env_file=None)


@pytest.fixture
def tracker(store, settings):
    return FinanceTracker(store, USER_ID, settings=settings)
