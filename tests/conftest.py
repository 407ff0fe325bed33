"""
Test configuration and fixtures.

Environment is pinned before any status_tracker import so the settings
object never points at a real database, OpenAI or rate-limit store.
"""
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["AI_MODE"] = "disabled"
os.environ["RECORD_STORE"] = "sql"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="status_tracker_uploads_")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from status_tracker.config import settings
from status_tracker.db import Base, get_db
from status_tracker.models import User, Role
from status_tracker.auth import get_password_hash
from status_tracker.services.container import build_services
from status_tracker.services.record_store import SqlRecordStore

from fakes import InMemoryStorage, ScriptedTextGenerator

# Test database URL (in-memory SQLite)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# Create test engine
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(db_session):
    return SqlRecordStore(TestingSessionLocal)


@pytest.fixture
def generator():
    return ScriptedTextGenerator()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def services(store, storage, generator):
    services = build_services(settings, TestingSessionLocal, store=store, storage=storage, generator=generator)
    yield services
    services.chat_sessions.close_all()


@pytest.fixture(scope="function")
def client(db_session, services):
    """Create a test client with database session and services overrides."""
    from fastapi.testclient import TestClient
    from status_tracker.main import app
    from status_tracker.deps import get_services

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _make_user(db_session, email, name, password, role):
    user = User(
        email=email,
        name=name,
        password_hash=get_password_hash(password),
        role=role,
        is_active=True
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def pm_user(db_session):
    """Create a project manager for testing."""
    return _make_user(db_session, "pm@test.com", "Pat Manager", "manager123", Role.PROJECT_MANAGER)


@pytest.fixture
def contractor_user(db_session):
    """Create a contractor for testing."""
    return _make_user(db_session, "crew@test.com", "Casey Contractor", "contractor123", Role.CONTRACTOR)


def _login(client, email, password):
    response = client.post("/auth/login", json={"email": email, "password": password})
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def pm_auth_headers(client, pm_user):
    """Get authentication headers for the project manager."""
    return _login(client, "pm@test.com", "manager123")


@pytest.fixture
def contractor_auth_headers(client, contractor_user):
    """Get authentication headers for the contractor."""
    return _login(client, "crew@test.com", "contractor123")
