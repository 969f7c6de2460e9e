"""
Pytest fixtures for backend tests.

Usage:
    pytest webapp/backend/tests
"""
import os
import pytest
from datetime import timedelta
from decimal import Decimal
from typing import Generator, Optional

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment before importing app modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from auth.jwt_handler import create_user_token
from auth.passwords import hash_password
from constants import UserRole, utc_now
from database import Base, get_db
from main import app
from models import StudentProfile, TutorProfile, User
from sse import get_notifier
from utils.rate_limiter import clear_rate_limits


# In-memory SQLite for fast tests (no external DB dependency)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

TEST_PASSWORD = "correct-horse-battery"


class RecordingNotifier:
    """Notifier that records every publish instead of delivering it."""

    def __init__(self):
        self.events = []

    def publish(self, channel_id, event_name, payload):
        self.events.append((channel_id, event_name, payload))

    def names_for(self, user_id):
        return [name for channel, name, _ in self.events if channel == user_id]


class ExplodingNotifier:
    """Notifier whose delivery always fails."""

    def publish(self, channel_id, event_name, payload):
        raise RuntimeError("push channel down")


@pytest.fixture(autouse=True)
def reset_rate_limits():
    clear_rate_limits()
    yield
    clear_rate_limits()


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """
    Create a fresh database session for each test.
    Tables are created before and dropped after each test.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(scope="function")
def client(db_session: Session, notifier: RecordingNotifier) -> Generator[TestClient, None, None]:
    """
    FastAPI test client with overridden database and notifier dependencies.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ============================================================================
# Users
# ============================================================================

def make_user(
    db: Session,
    name: str,
    email: str,
    role: UserRole,
    hourly_rate: Optional[str] = None,
    subjects: str = "",
) -> User:
    user = User(name=name, email=email, role=role.value, password_hash=hash_password(TEST_PASSWORD))
    db.add(user)
    db.flush()
    if role == UserRole.TUTOR:
        db.add(TutorProfile(user_id=user.id, hourly_rate=Decimal(hourly_rate or "0"), subjects=subjects))
    elif role == UserRole.STUDENT:
        db.add(StudentProfile(user_id=user.id))
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def student(db_session) -> User:
    return make_user(db_session, "Sam Student", "sam@example.com", UserRole.STUDENT)


@pytest.fixture
def other_student(db_session) -> User:
    return make_user(db_session, "Olive Student", "olive@example.com", UserRole.STUDENT)


@pytest.fixture
def tutor(db_session) -> User:
    return make_user(db_session, "Tess Tutor", "tess@example.com", UserRole.TUTOR, hourly_rate="40.00", subjects="Math,Physics")


@pytest.fixture
def other_tutor(db_session) -> User:
    return make_user(db_session, "Theo Tutor", "theo@example.com", UserRole.TUTOR, hourly_rate="25.00", subjects="Chemistry")


@pytest.fixture
def admin(db_session) -> User:
    return make_user(db_session, "Ada Admin", "ada@example.com", UserRole.ADMIN)


@pytest.fixture
def auth_headers():
    """Build a Bearer header for a user."""
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_user_token(user)}"}
    return _headers


# ============================================================================
# Time helpers
# ============================================================================

def future_slot(days: int = 3, hour: int = 10, minutes: int = 60):
    """A [start, end) window `days` from now, starting on the hour (naive UTC)."""
    start = (utc_now() + timedelta(days=days)).replace(hour=hour, minute=0, second=0, microsecond=0)
    return start, start + timedelta(minutes=minutes)
