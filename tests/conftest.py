import os

# Must be set before the app (and security / db modules) are imported.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PUSH_GATEWAY_URL"] = ""

from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.achievements.service import AchievementService  # noqa: E402
from app.auth.models import User  # noqa: E402
from app.commitments.service import CommitmentService  # noqa: E402
from app.core.deps import get_push_channel  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.session import get_db  # noqa: E402
from app.goals.progress import ProgressService  # noqa: E402
from app.goals.service import GoalService  # noqa: E402
from app.main import app  # noqa: E402
from app.notifications.push import PushChannel  # noqa: E402
from app.notifications.service import NotificationService  # noqa: E402
from app.social.service import SocialService  # noqa: E402

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakePushChannel(PushChannel):
    """Records what would have gone to the gateway; can be told to fail."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, tokens, payload):
        if self.fail:
            raise RuntimeError("gateway down")
        self.sent.append((tokens, payload))


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def push():
    return FakePushChannel()


def _build_services(session, push):
    notifications = NotificationService(session, push)
    achievements = AchievementService(session, notifications)
    progress = ProgressService(session, notifications, achievements)
    return SimpleNamespace(
        db=session,
        notifications=notifications,
        achievements=achievements,
        progress=progress,
        goals=GoalService(session, progress),
        commitments=CommitmentService(session, progress, achievements, notifications),
        social=SocialService(session, notifications, achievements),
    )


@pytest.fixture
def services(db, push):
    return _build_services(db, push)


@pytest.fixture
def other_services(db, push):
    """Same services on a second session, like a concurrent request would have."""
    session = TestingSessionLocal()
    try:
        yield _build_services(session, push)
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make(name: str = "alice") -> User:
        user = User(email=f"{name}@example.com", name=name.title(), password_hash="00:00")
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def client(db, push):
    def _get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_push_channel] = lambda: push
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
