import os
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ["APP_ENV"] = "dev"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("STAFF_IDS", "900,901")
os.environ.setdefault("TIMEZONE", "Europe/Moscow")
os.environ.setdefault("TELEGRAM_DRY_RUN", "true")
os.environ.setdefault("SCHEDULERS_ENABLED", "false")

from bookingbot.db.base import Base
from bookingbot.db.deps import get_db
import bookingbot.db.models as _models  # noqa: F401
from bookingbot.main import app
from bookingbot.services import slot_store
from bookingbot.services.notifier import set_notifier
from tests.helpers.notifier import RecordingNotifier

SQLALCHEMY_DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///:memory:")


def is_sqlite() -> bool:
    url = SQLALCHEMY_DATABASE_URL or ""
    return url.startswith("sqlite")


if is_sqlite():
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Make scheduler jobs use the same DB
import bookingbot.db.session as _db_session

_db_session.engine = engine
_db_session.SessionLocal = TestingSessionLocal


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Create a test client with database dependency override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True, scope="function")
def notifier():
    """Every test records notifications instead of sending them."""
    recorder = RecordingNotifier()
    set_notifier(recorder)
    yield recorder
    set_notifier(None)


@pytest.fixture
def now():
    """Real clock, truncated to the minute: services that default to utc_now() agree with it."""
    return datetime.now(UTC).replace(second=0, microsecond=0)


@pytest.fixture
def make_slot(db, now):
    """Create a slot starting `hours` after `now`, lasting `minutes`."""

    def _make(hours: float, minutes: int = 60, label: str | None = None):
        start = now + timedelta(hours=hours)
        slot = slot_store.create_slot(db, label, start, start + timedelta(minutes=minutes), now=now)
        # Detach so the attributes stay readable after the row is claimed
        db.expunge(slot)
        return slot

    return _make
