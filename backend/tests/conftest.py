"""
Fixtures shared by the unit and API suites

Every test gets a fresh in-memory SQLite store and three callers: a
maintenance manager and a technician in tenant 1, and a manager in tenant 2.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers the tables
from app.main import app
from app.db.base import Base
from app.db.session import get_db
from app.core.security import CallerIdentity, create_access_token

from tests.factories import COMPANY_ID, reset_sequences

OTHER_COMPANY_ID = 2

# One connection shared by every session so the in-memory store survives
engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    reset_sequences()
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(db_session):
    """Alias used by the service-level suites"""
    return db_session


@pytest.fixture
def client(db_session):
    """TestClient whose requests run against the test session"""
    def _session_override():
        yield db_session

    app.dependency_overrides[get_db] = _session_override
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def manager():
    return CallerIdentity(user_id="mgr-1", company_id=COMPANY_ID, role="maintenance_manager")


@pytest.fixture
def technician():
    return CallerIdentity(user_id="tech-1", company_id=COMPANY_ID, role="technician")


@pytest.fixture
def outsider():
    return CallerIdentity(user_id="mgr-2", company_id=OTHER_COMPANY_ID, role="maintenance_manager")


def bearer_for(identity: CallerIdentity) -> dict:
    token = create_access_token(identity.user_id, identity.company_id, identity.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def manager_headers(manager):
    return bearer_for(manager)


@pytest.fixture
def technician_headers(technician):
    return bearer_for(technician)


@pytest.fixture
def outsider_headers(outsider):
    return bearer_for(outsider)
