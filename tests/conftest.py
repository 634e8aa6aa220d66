"""Shared fixtures for all test modules."""
import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("API_KEY", "TEST-KEY-2026")
os.environ.setdefault("APP_ENV", "development")

from eventpass.main import create_app
from eventpass.repository.catalog import InMemoryCatalog
from eventpass.repository.store import InMemoryStore
from eventpass.services.refund_service import RefundService
from seed_data import load_seed_data

FIXED_NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Injectable clock that only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(FIXED_NOW)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def catalog(store):
    seeded = InMemoryCatalog()
    load_seed_data(seeded, store, now=FIXED_NOW)
    return seeded


@pytest.fixture
def service(store, catalog, clock):
    return RefundService(store, catalog, clock=clock)


@pytest.fixture
def client(store, catalog, clock):
    app = create_app(store=store, catalog=catalog, clock=clock, seed=False)
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def auth_headers():
    return {"X-API-Key": "TEST-KEY-2026"}
