"""Pytest fixtures and configuration for quietblocks tests."""

import os

# Module-level engine and display defaults read these at import time.
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["DISPLAY_TIMEZONE"] = "UTC"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
import uuid

from quietblocks.database.database import Base, get_db
from quietblocks.database.quiet_block_repository import QuietBlockRepository
from quietblocks.models.quiet_block import QuietBlock, QuietBlockStatus, Priority, ReminderConfig
from quietblocks.models.time_utils import utc_now


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(autouse=True)
def _display_timezone_utc(monkeypatch):
    """Keep wall-clock formatting deterministic regardless of the host."""
    monkeypatch.setenv("DISPLAY_TIMEZONE", "UTC")


@pytest.fixture(scope="function")
def db_session(test_user_id):
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    Also creates a test user in the database.
    """
    from quietblocks.database.models import UserDB

    # Create engine with StaticPool for in-memory database
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    # Create test user (required for foreign key constraints)
    now = utc_now()
    session.add(UserDB(
        id=test_user_id,
        email="test@example.com",
        name="Test User",
        created_at=now,
        updated_at=now,
    ))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def block_repository(db_session: Session):
    """Create a QuietBlockRepository instance for testing."""
    return QuietBlockRepository(db_session)


@pytest.fixture
def test_user_id():
    """Test user ID for multi-user testing."""
    return "test-user-123"


@pytest.fixture
def other_user_id(db_session: Session):
    """A second user in the database."""
    from quietblocks.database.models import UserDB
    now = utc_now()
    db_session.add(UserDB(id="other-user-456", email="other@example.com", name="Other", created_at=now, updated_at=now))
    db_session.commit()
    return "other-user-456"


@pytest.fixture
def day():
    """A fixed future calendar day (naive UTC midnight)."""
    return datetime(2030, 1, 7)


@pytest.fixture
def early_now(day):
    """An evaluation instant before anything on ``day`` starts."""
    return day + timedelta(hours=6)


@pytest.fixture
def sample_block_base(test_user_id, day):
    """Base quiet block data; override per test.

    Default slot is 10:00-11:00 on ``day`` with a 15 minute reminder.
    """
    now = utc_now()
    start = day + timedelta(hours=10)
    return {
        "id": str(uuid.uuid4()),
        "user_id": test_user_id,
        "title": "Deep work",
        "description": None,
        "start_time": start,
        "end_time": start + timedelta(hours=1),
        "status": QuietBlockStatus.SCHEDULED,
        "priority": Priority.MEDIUM,
        "tags": [],
        "reminder_config": ReminderConfig(minutes_before=15),
        "reminder_scheduled_at": start - timedelta(minutes=15),
        "reminder_sent": False,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def make_block(sample_block_base):
    """Factory for QuietBlock objects at given hours on ``day``."""
    def _make(start: datetime = None, end: datetime = None, **overrides) -> QuietBlock:
        data = {**sample_block_base, "id": str(uuid.uuid4())}
        if start is not None:
            data["start_time"] = start
            before = overrides.get("reminder_config", data["reminder_config"]).minutes_before
            data["reminder_scheduled_at"] = start - timedelta(minutes=before)
        if end is not None:
            data["end_time"] = end
        data.update(overrides)
        return QuietBlock(**data)
    return _make


@pytest.fixture
def sample_block(make_block):
    return make_block()


@pytest.fixture
def tomorrow_at():
    """Build a naive-UTC instant on tomorrow's date (API tests run against the real clock)."""
    tomorrow = (utc_now() + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)

    def _at(hour: int, minute: int = 0) -> datetime:
        return tomorrow + timedelta(hours=hour, minutes=minute)
    return _at


@pytest.fixture
def test_user(db_session, test_user_id):
    """The test user as stored in the database."""
    from quietblocks.database.user_repository import UserRepository
    return UserRepository(db_session).get(test_user_id)


@pytest.fixture
def fake_notifier():
    """Notifier double recording every message it is asked to send."""
    from quietblocks.engine.reminders import DeliveryResult

    class FakeNotifier:
        def __init__(self):
            self.sent = []
            self.fail_for = set()
            self.test_emails = []
            self.fail_test_email = False

        def send_reminder(self, message):
            self.sent.append(message)
            if message.block_id in self.fail_for:
                return DeliveryResult(success=False, error="mailbox unavailable")
            return DeliveryResult(success=True, message_id=f"msg-{len(self.sent)}")

        def send_test_email(self, to):
            self.test_emails.append(to)
            if self.fail_test_email:
                return DeliveryResult(success=False, error="mailbox unavailable")
            return DeliveryResult(success=True, message_id="test-msg")

    return FakeNotifier()


@pytest.fixture
def test_client(db_session: Session, test_user, fake_notifier, monkeypatch):
    """Create a FastAPI test client with overridden database dependency and authentication."""
    from quietblocks.api.app import app, get_notifier
    from quietblocks.auth.dependencies import get_current_user

    monkeypatch.setenv("CRON_SECRET", "test-cron-secret")

    # Override the get_db dependency to use our test database session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    # Override authentication to return test user
    def override_get_current_user():
        return test_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_notifier] = lambda: fake_notifier

    with TestClient(app) as client:
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
