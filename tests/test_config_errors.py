import importlib

import pytest
from celery import Celery
from fastapi import HTTPException
from sqlalchemy import inspect
from sqlalchemy.orm import Session
from tenacity import wait_none

from workhub.container import build_container, build_job_queue, build_job_runner
from workhub.core.config import Settings
from workhub.core.db.dependencies import get_db, services_dependency
from workhub.core.db.session import build_engine, build_session_factory
from workhub.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    SlugGenerationError,
    StorageError,
    ValidationError,
)
from workhub.jobs import celery_app
from workhub.jobs.notify_workspace_members import NotifyWorkspaceMembers
from workhub.jobs.queue import CeleryJobQueue, InlineJobQueue, ThreadPoolJobQueue
from workhub.jobs.runner import JobRunner
from workhub.jobs.send_welcome_email import SendWelcomeEmail

from conftest import RecordingDelivery


class TestSettings:
    def test_overrides_are_per_instance(self):
        custom = Settings(JOB_WORKERS=9)
        assert custom.JOB_WORKERS == 9
        assert Settings().JOB_WORKERS == Settings.JOB_WORKERS

    def test_unknown_setting(self):
        with pytest.raises(AttributeError):
            Settings(NOT_A_SETTING=1)


class TestErrors:
    @pytest.mark.parametrize(
        "error,kind,status_code",
        [
            (ValidationError("Title is too short", rule="min_length"), "validation_error", 422),
            (SlugGenerationError("!!!"), "validation_error", 422),
            (InvalidTransitionError("cancelled", "completed"), "validation_error", 422),
            (NotFoundError("Task", 4), "not_found", 404),
            (ForbiddenError("update", "workspace"), "forbidden", 403),
            (ConflictError("Slug taken"), "conflict", 409),
            (PersistenceError("Database unavailable"), "persistence_error", 500),
            (StorageError("File upload failed"), "persistence_error", 500),
        ],
    )
    def test_kind_and_status(self, error, kind, status_code):
        assert isinstance(error, HTTPException)
        assert error.kind == kind
        assert error.status_code == status_code
        assert error.retryable is False

    def test_messages(self):
        assert str(NotFoundError("Task", 4)) == "Task with ID 4 not found"
        assert str(ForbiddenError("update", "workspace")) == "You are not allowed to update this workspace"

    def test_to_dict(self):
        assert ValidationError("Bad", rule="due_date").to_dict() == {
            "kind": "validation_error",
            "message": "Bad",
            "rule": "due_date",
        }
        assert ConflictError("Slug taken", suggestions=["my-team-hq"]).to_dict() == {
            "kind": "conflict",
            "message": "Slug taken",
            "suggestions": ["my-team-hq"],
        }
        assert NotFoundError("Task", 4).to_dict() == {
            "kind": "not_found",
            "message": "Task with ID 4 not found",
        }


def test_get_db_yields_and_closes_a_session():
    dependency = get_db()
    db = next(dependency)
    assert isinstance(db, Session)
    with pytest.raises(StopIteration):
        next(dependency)


def test_services_dependency(container, db):
    get_services = services_dependency(container)
    services = get_services(db=db)
    assert services.workspace_service.repository.db is db
    assert services.workspace_service.bus is container.bus


class TestWiring:
    def test_create_tables(self, settings):
        session_factory = build_session_factory(build_engine("sqlite://"))
        container = build_container(settings, session_factory=session_factory, create_tables=True)
        try:
            tables = set(inspect(session_factory.kw["bind"]).get_table_names())
        finally:
            container.shutdown()
        assert {
            "users",
            "workspaces",
            "workspace_members",
            "projects",
            "tasks",
            "task_comments",
            "task_attachments",
            "notifications",
        } <= tables

    def test_queue_backends(self, settings, session_factory):
        runner = build_job_runner(settings, session_factory, RecordingDelivery())
        assert isinstance(build_job_queue(Settings(JOB_QUEUE_BACKEND="inline"), runner), InlineJobQueue)
        queue = build_job_queue(Settings(JOB_QUEUE_BACKEND="thread", JOB_WORKERS=1), runner)
        assert isinstance(queue, ThreadPoolJobQueue)
        queue.shutdown()
        with pytest.raises(ValueError):
            build_job_queue(Settings(JOB_QUEUE_BACKEND="carrier-pigeon"), runner)

    def test_celery_backend(self, monkeypatch, session_factory):
        monkeypatch.setattr(celery_app, "_celery_app", None)
        settings = Settings(JOB_QUEUE_BACKEND="celery", CELERY_BROKER_URL="memory://")
        runner = build_job_runner(settings, session_factory, RecordingDelivery())

        queue = build_job_queue(settings, runner)

        assert isinstance(queue, CeleryJobQueue)
        assert {job_type: task.name for job_type, task in queue.tasks.items()} == celery_app.TASK_NAMES

    def test_worker_module_exposes_the_app(self, monkeypatch):
        monkeypatch.setattr(celery_app, "_celery_app", None)
        import workhub.worker as worker

        worker = importlib.reload(worker)

        assert isinstance(worker.celery_app, Celery)
        assert set(celery_app.TASK_NAMES.values()) <= set(worker.celery_app.tasks)


class FakeTask:
    def __init__(self):
        self.payloads = []

    def delay(self, payload):
        self.payloads.append(payload)


def test_celery_queue_sends_json_payload():
    task = FakeTask()
    job = NotifyWorkspaceMembers(
        workspace_id=1, notification_type="task_created", title="New task", message="Created"
    )

    CeleryJobQueue({"notify_workspace_members": task}).enqueue(job)

    payload = task.payloads[0]
    assert payload["job_id"] == job.job_id
    assert payload["channels"] == ["database"]
    assert NotifyWorkspaceMembers.model_validate(payload) == job


class TestCeleryTask:
    class Members:
        def __init__(self, fail=False):
            self.fail = fail

        def get_member_ids(self, workspace_id):
            if self.fail:
                raise RuntimeError("database is down")
            return [1, 2, 3]

    def _runner(self, delivery, members):
        from contextlib import contextmanager

        @contextmanager
        def scope():
            yield members

        return JobRunner(delivery, scope, wait=wait_none())

    def _payload(self):
        return NotifyWorkspaceMembers(
            workspace_id=1,
            notification_type="task_created",
            title="New task",
            message="Created",
            exclude_user_id=1,
        ).model_dump(mode="json")

    def test_delivers(self, monkeypatch):
        delivery = RecordingDelivery()
        monkeypatch.setattr(celery_app, "_worker_runner", self._runner(delivery, self.Members()))
        tasks = celery_app.register_tasks(Celery("workhub-test"), Settings())

        assert tasks["notify_workspace_members"].apply(args=[self._payload()]).get() == "delivered"
        assert delivery.recipients == {2, 3}

    def test_last_attempt_records_failure(self, monkeypatch):
        runner = self._runner(RecordingDelivery(), self.Members(fail=True))
        monkeypatch.setattr(celery_app, "_worker_runner", runner)
        tasks = celery_app.register_tasks(Celery("workhub-test"), Settings(NOTIFY_MAX_TRIES=1))

        assert tasks["notify_workspace_members"].apply(args=[self._payload()]).get() == "failed"
        assert runner.failed_jobs[0].attempts == 1
        assert "database is down" in runner.failed_jobs[0].error

    def test_welcome_email_task(self, monkeypatch):
        delivery = RecordingDelivery()
        monkeypatch.setattr(celery_app, "_worker_runner", self._runner(delivery, self.Members()))
        tasks = celery_app.register_tasks(Celery("workhub-test"), Settings())
        payload = SendWelcomeEmail(user_id=5, name="Dana Doe").model_dump(mode="json")

        assert tasks["send_welcome_email"].apply(args=[payload]).get() == "delivered"
        assert delivery.recipients == {5}
        assert delivery.calls[0]["title"] == "Welcome to Workhub"
