import pytest
from tenacity import wait_none

from workhub.container import build_container
from workhub.core.errors import ConflictError, ForbiddenError
from workhub.domain.events import UserCreated, UserDeleted, UserUpdated, account_event_adapter
from workhub.events.handlers import WelcomeEmailHandler
from workhub.jobs.runner import JobRunner
from workhub.jobs.send_welcome_email import SendWelcomeEmail
from workhub.notifications.delivery import NotificationDelivery
from workhub.notifications.enums import NotificationChannel, NotificationType

from conftest import RecordingDelivery


class TestAccountEvents:
    def test_register(self, user_service, user_bus):
        user = user_service.register_user("Dana Doe", "dana@example.com")

        [event] = user_bus.get_history()
        assert isinstance(event, UserCreated)
        assert event.user == user
        assert event.actor_id is None

    def test_update(self, user_service, user_bus, alice):
        user_bus.clear_history()

        user_service.update_user(alice.id, alice.id, name="Alice Renamed")
        user_service.update_user(alice.id, alice.id, email="alice@new.example.com")

        first, second = user_bus.get_history(UserUpdated)
        assert first.actor_id == alice.id
        assert first.user.name == "Alice Renamed"
        assert first.changed_fields == ["name"]
        assert second.changed_fields == ["email", "email_verified_at"]

    def test_verify_email(self, user_service, user_bus, alice):
        user_bus.clear_history()

        user_service.verify_email(alice.id)
        user_service.verify_email(alice.id)

        [event] = user_bus.get_history()
        assert event.changed_fields == ["email_verified_at"]
        assert event.user.is_verified is True

    def test_delete(self, user_service, user_bus, alice):
        user_bus.clear_history()

        user_service.delete_user(alice.id, alice.id)

        [event] = user_bus.get_history()
        assert isinstance(event, UserDeleted)
        assert event.user.id == alice.id
        assert event.actor_id == alice.id

    def test_failed_operations_publish_nothing(self, user_service, user_bus, alice, bob):
        user_bus.clear_history()

        with pytest.raises(ConflictError):
            user_service.register_user("Alice Again", "alice@example.com")
        with pytest.raises(ForbiddenError):
            user_service.update_user(bob.id, alice.id, name="Hijacked")
        with pytest.raises(ForbiddenError):
            user_service.delete_user(bob.id, alice.id)

        assert user_bus.get_history() == []

    def test_task_stream_stays_separate(self, user_service, bus, user_bus):
        bus.clear_history()
        user_service.register_user("Dana Doe", "dana@example.com")
        assert bus.get_history() == []
        assert len(user_bus.get_history()) == 1

    def test_round_trip(self, alice):
        event = UserUpdated(actor_id=alice.id, user=alice, changed_fields=["name"])
        parsed = account_event_adapter.validate_json(account_event_adapter.dump_json(event))
        assert parsed == event


@pytest.fixture
def welcome_container(settings, session_factory, cache, delivery, storage, clock):
    settings.SEND_WELCOME_EMAIL = True
    container = build_container(
        settings,
        session_factory=session_factory,
        cache=cache,
        delivery=delivery,
        storage=storage,
        clock=clock,
    )
    yield container
    container.shutdown()


class TestWelcomeEmail:
    def test_sent_on_registration(self, welcome_container, db, delivery):
        user_service = welcome_container.services(db).user_service

        user = user_service.register_user("Dana Doe", "dana@example.com")

        [call] = delivery.calls
        [event] = welcome_container.user_bus.get_history()
        assert call["user_id"] == user.id
        assert call["channels"] == [NotificationChannel.email]
        assert call["notification_type"] == NotificationType.success
        assert call["title"] == "Welcome to Workhub"
        assert call["message"] == "Hi Dana Doe, your Workhub account is ready."
        assert call["data"]["dedup_key"] == f"{event.event_id}:{user.id}"

    def test_disabled_by_setting(self, user_service, delivery):
        user_service.register_user("Dana Doe", "dana@example.com")
        assert delivery.calls == []

    def test_handler_builds_one_job(self, alice):
        jobs = []

        class RecordingQueue:
            def enqueue(self, job):
                jobs.append(job)

        event = UserCreated(user=alice)
        WelcomeEmailHandler(RecordingQueue(), project_name="Acme")(event)

        [job] = jobs
        assert job.job_id == event.event_id
        assert job.user_id == alice.id
        assert job.title == "Welcome to Acme"

    def test_undelivered_email_is_retried(self):
        class FlakyEmail(NotificationDelivery):
            def __init__(self):
                self.attempts = 0

            def deliver(self, user_id, notification_type, title, message, **kwargs):
                self.attempts += 1
                return {NotificationChannel.email: self.attempts > 1}

        delivery = FlakyEmail()
        runner = JobRunner(delivery, repository_factory=None, max_tries=3, wait=wait_none())

        assert runner.run(SendWelcomeEmail(user_id=5, name="Dana Doe")) is True
        assert delivery.attempts == 2
        assert len(runner.failed_jobs) == 0

    def test_exhausted_welcome_email_is_recorded(self):
        runner = JobRunner(
            RecordingDelivery(failures=10), repository_factory=None, max_tries=2, wait=wait_none()
        )
        job = SendWelcomeEmail(user_id=5, name="Dana Doe")

        assert runner.run(job) is False

        [failed] = runner.failed_jobs
        assert failed.job_id == job.job_id
        assert failed.job_type == "send_welcome_email"
        assert failed.workspace_id is None
