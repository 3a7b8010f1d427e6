import os
import sys
from pathlib import Path

import pytest

BACKEND_PATH = Path(__file__).resolve().parents[1]
if str(BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(BACKEND_PATH))

# Settings are read at import time, so the environment has to be in place first
os.environ["SECRET_KEY"] = "test-signing-key-for-travel-expense-suite-0001"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EXCHANGE_RATE_API_KEY"] = "test-access-key"

from app.database import postgres_db
from app.database.db_service import get_db_service
from app.models.schemas import Identity, Role
from app.services.auth import create_access_token


class FakeRateOracle:
    """Deterministic conversion to USD."""

    RATES = {"USD": 1.0, "EUR": 1.1, "GBP": 1.25, "JPY": 0.0067}

    def __init__(self):
        self.calls = []

    def convert(self, amount, source, target):
        self.calls.append((amount, source, target))
        return amount * self.RATES[source] / self.RATES[target]


@pytest.fixture(autouse=True)
def database():
    postgres_db.init_db("sqlite://")
    yield
    postgres_db.close_db()


@pytest.fixture
def session(database):
    session = postgres_db.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def db(session):
    return get_db_service(session)


@pytest.fixture
def rate_oracle():
    return FakeRateOracle()


@pytest.fixture
def identity():
    def _identity(username="alice", role=Role.EMPLOYEE):
        return Identity(username=username, role=role)
    return _identity


@pytest.fixture
def auth_headers():
    def _headers(username="alice", role=Role.EMPLOYEE):
        token = create_access_token({"sub": username, "role": role.value})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def client(rate_oracle):
    from fastapi.testclient import TestClient
    from app.main import app
    from app.services.exchange_rate_client import get_rate_oracle

    app.dependency_overrides[get_rate_oracle] = lambda: rate_oracle
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
