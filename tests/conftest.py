# tests/conftest.py

import pytest
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.testclient import TestClient

from app import models  # noqa: F401  registers every table on Base.metadata
from app.api import deps
from app.core.config import settings
from app.core.limiter import limiter
from app.db.base_class import Base
from app.db.session import get_db
from app.main import app


# --- Test Database Setup ---
# One shared in-memory SQLite connection, rebuilt for every test.
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


# --- Broker Mocks ---
@pytest.fixture(autouse=True)
def enqueued_jobs():
    """Captures delivery jobs instead of handing them to Celery."""
    jobs = []

    def _capture(batch):
        batch = list(batch)
        jobs.extend(batch)
        return len(batch)

    with patch(
        "app.services.campaigns.campaign_service.enqueue_send_jobs", side_effect=_capture
    ):
        yield jobs


@pytest.fixture(autouse=True)
def published_events():
    """Captures webhook events instead of handing them to Celery."""
    events = []

    def _capture(event_name, data):
        events.append((event_name, data))
        return True

    with patch("app.services.campaigns.campaign_service.publish_event", side_effect=_capture):
        yield events


# --- Mock Dependencies Setup ---
class MockTokenPayload:
    def __init__(self, sub="user_123", org_id="org_abc"):
        self.sub = sub
        self.org_id = org_id


def override_get_current_user():
    return MockTokenPayload()


# --- Test Client Fixtures ---
@pytest.fixture(scope="function")
def test_client(db_session):
    """
    Provides a TestClient backed by the SQLite test database, with
    authentication mocked and the background scheduler disabled.
    """

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_current_user] = override_get_current_user
    limiter.reset()

    with patch.object(settings, "SCHEDULER_ENABLED", False):
        with TestClient(app) as client:
            yield client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def anonymous_client(db_session):
    """TestClient without the authentication override."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()

    with patch.object(settings, "SCHEDULER_ENABLED", False):
        with TestClient(app) as client:
            yield client

    app.dependency_overrides.clear()
