"""Pytest fixtures for commission ledger tests."""

import os

# Keep the module-level engine off the filesystem.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_BACKEND", "sql")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from commission_service.database import Base, configure_sqlite
from commission_service.ledger import CommissionLedger
from commission_service.storage.local import LocalStore
from commission_service.storage.sql import SqlStore


class Clock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


@pytest.fixture
def sql_engine():
    """In-memory SQLite shared by every connection of the test."""
    engine = configure_sqlite(create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    ))
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=sql_engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def sql_store(db_session):
    return SqlStore(db_session)


@pytest.fixture
def local_store(tmp_path):
    return LocalStore(tmp_path / "store.json")


@pytest.fixture(params=["sql", "local"])
def store(request):
    """Every ledger rule is checked against both back-ends."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def clock():
    return Clock(datetime(2024, 3, 20, 12, 0, 0))


@pytest.fixture
def ledger(store, clock):
    ledger = CommissionLedger(store, clock=clock, auto_create_brands=True)
    ledger.update_settings(fixed_commission_percentage=10)
    return ledger


@pytest.fixture
def brand(ledger):
    return ledger.add_brand("Samsung")


@pytest.fixture
def make_order(ledger, brand):
    """Create an order with sensible defaults; O.S. numbers count up from 5001."""
    counter = {"next": 5001}

    def _make(entry_date="2024-03-10", service_value=100, **overrides):
        fields = {
            "os_number": counter["next"],
            "entry_date": entry_date,
            "customer_name": "Maria Silva",
            "brand": "Samsung",
            "service_value": service_value,
        }
        fields.update(overrides)
        if isinstance(fields["os_number"], int):
            counter["next"] = max(counter["next"], fields["os_number"]) + 1
        return ledger.create_order(**fields)

    return _make
