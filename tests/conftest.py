"""
Shared test fixtures.

Sets up an isolated test database so tests never touch
the real database. Tables are created before and dropped
after every test, so no test data persists.
"""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import domain  # noqa: F401  (registers the host tables on Base)
from entity_audit.main import app
from entity_audit.models.base import Base, get_db
from entity_audit.services.audit_store import SqlAlchemyAuditStore
from entity_audit.services.auditor import Auditor, default_auditor


# Use SQLite for tests, no external database needed.
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class FakeClock:
    """Deterministic clock: each reading is one second after the last."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test, drop them after.

    autouse=True means every test gets this automatically.
    This ensures each test starts with a clean database.
    """
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_default_auditor():
    """Policies declared through the module-level API never leak between tests."""
    yield
    default_auditor.uninstall()
    default_auditor.registry.clear()


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def session_factory():
    """For tests that need more than one session, e.g. one per thread."""
    return TestSessionLocal


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_auditor(clock):
    """
    Build auditors whose listeners are removed after the test.

    Each one owns its registry, so tests never see each
    other's policies.
    """
    created = []

    def _make(store=None):
        auditor = Auditor(store=store or SqlAlchemyAuditStore(), clock=clock)
        created.append(auditor)
        return auditor

    yield _make
    for auditor in created:
        auditor.uninstall()


@pytest.fixture
def auditor(make_auditor):
    return make_auditor()


@pytest.fixture
def client(db_session):
    """
    Provide a test client with the test database.

    We override the get_db dependency so the FastAPI app
    uses our test session instead of the real database.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
