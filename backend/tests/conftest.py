import os

# db.session builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["ENABLE_RETENTION_SWEEP"] = "0"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from db.base import Base
from db.deps import get_db
from db.session import build_engine_kwargs
from authentication.deps import get_current_user
from authentication.local_users import MANAGER_ROLE, LocalUser
from main import app
from services.commission_store import CommissionStore
from services.lifecycle.rows import TransactionRow


@pytest.fixture
def engine():
    test_engine = create_engine("sqlite://", **build_engine_kwargs("sqlite://"))
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return CommissionStore(db)


def _override_db(db):
    def _get_db():
        yield db

    return _get_db


@pytest.fixture
def anon_client(db):
    app.dependency_overrides[get_db] = _override_db(db)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = _override_db(db)
    app.dependency_overrides[get_current_user] = lambda: LocalUser(
        username="manager@commission-tracker.com", role=MANAGER_ROLE
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_row():
    counter = {"id": 0}

    def _make(device_id="356000000000001", **fields):
        counter["id"] += 1
        fields.setdefault("activation_date", "2025-01-01")
        return TransactionRow(id=counter["id"], device_id=device_id, **fields)

    return _make


def _record(device_id="356000000000001", **fields) -> dict:
    row = {
        "device_id": device_id,
        "payment_date": "2025-01-09",
        "activation_date": "2025-01-01",
        "payment_type": "Commission",
        "amount": 45.0,
        "description": "Month 1",
        "month_number": 1,
        "sale_type": "New Line",
        "rep_username": "rep1",
        "store": "Main St",
    }
    row.update(fields)
    return row


@pytest.fixture
def record():
    return _record
