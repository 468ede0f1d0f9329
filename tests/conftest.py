"""Shared fixtures for the workhub test suite."""

from datetime import datetime, timedelta, timezone

import pytest

import workhub.models  # noqa: F401
from workhub.container import build_container
from workhub.core.cache import InMemoryCache
from workhub.core.config import Settings
from workhub.core.db.base import Base
from workhub.core.db.session import build_engine, build_session_factory
from workhub.events.channels import InMemoryBroadcaster
from workhub.notifications.delivery import NotificationDelivery
from workhub.storage.local import LocalFileStorage

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingDelivery(NotificationDelivery):
    """Captures every deliver() call; can be told to fail a few times first."""

    def __init__(self, failures: int = 0):
        self.calls = []
        self.failures = failures

    def deliver(self, user_id, notification_type, title, message, data=None, action_url=None, channels=()):
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("delivery backend unavailable")
        self.calls.append(
            {
                "user_id": user_id,
                "notification_type": notification_type,
                "title": title,
                "message": message,
                "data": data or {},
                "action_url": action_url,
                "channels": list(channels),
            }
        )
        return {}

    @property
    def recipients(self):
        return {call["user_id"] for call in self.calls}


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        JOB_QUEUE_BACKEND="inline",
        CACHE_BACKEND="memory",
        ATTACHMENT_ROOT=str(tmp_path / "media"),
        NOTIFY_MAX_TRIES=3,
        NOTIFY_TIMEOUT_SECONDS=5.0,
        NOTIFY_CHANNELS=["database"],
        COMMENT_EDIT_WINDOW_MINUTES=30,
        SEND_WELCOME_EMAIL=False,
    )


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def broadcaster() -> InMemoryBroadcaster:
    return InMemoryBroadcaster()


@pytest.fixture
def storage(settings) -> LocalFileStorage:
    return LocalFileStorage(settings.ATTACHMENT_ROOT)


@pytest.fixture
def container(settings, session_factory, cache, delivery, broadcaster, storage, clock):
    container = build_container(
        settings,
        session_factory=session_factory,
        cache=cache,
        delivery=delivery,
        broadcaster=broadcaster,
        storage=storage,
        clock=clock,
    )
    yield container
    container.shutdown()


@pytest.fixture
def services(container, db):
    return container.services(db)


@pytest.fixture
def service(services):
    return services.workspace_service


@pytest.fixture
def user_service(services):
    return services.user_service


@pytest.fixture
def repository(service):
    return service.repository


@pytest.fixture
def bus(container):
    return container.bus


@pytest.fixture
def user_bus(container):
    return container.user_bus


@pytest.fixture
def notification_service(services):
    return services.notification_service


# ---------------------------------------------------------------------------
# Domain data
# ---------------------------------------------------------------------------

@pytest.fixture
def alice(user_service):
    return user_service.register_user("Alice Owner", "alice@example.com")


@pytest.fixture
def bob(user_service):
    return user_service.register_user("Bob Member", "bob@example.com")


@pytest.fixture
def carol(user_service):
    return user_service.register_user("Carol Member", "carol@example.com")


@pytest.fixture
def mallory(user_service):
    return user_service.register_user("Mallory Outsider", "mallory@example.com")


@pytest.fixture
def workspace(service, alice, bob, carol):
    """'My Team' owned by Alice, with Bob and Carol as members."""
    ws = service.create_workspace(alice.id, "My Team", "Core team")
    service.add_member_to_workspace(alice.id, ws.id, bob.id)
    service.add_member_to_workspace(alice.id, ws.id, carol.id)
    return service.get_workspace(alice.id, ws.id)


@pytest.fixture
def project(service, alice, workspace):
    return service.create_project(alice.id, workspace.id, "Launch")


@pytest.fixture
def task(service, alice, project, clock, bus, delivery, broadcaster):
    task = service.create_task(
        alice.id, project.id, "Ship it", due_date=clock() + timedelta(days=1)
    )
    bus.clear_history()
    delivery.calls.clear()
    broadcaster.messages.clear()
    return task
