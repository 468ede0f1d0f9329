import time
from contextlib import contextmanager
from datetime import timedelta

import pytest
from tenacity import wait_none

from workhub.core.errors import ForbiddenError
from workhub.domain.entities import Task
from workhub.domain.events import TaskCompleted, TaskCreated
from workhub.events.handlers import FanOutHandler, describe
from workhub.jobs.notify_workspace_members import NotifyWorkspaceMembers
from workhub.jobs.queue import InlineJobQueue, ThreadPoolJobQueue
from workhub.jobs.runner import JobRunner
from workhub.notifications.enums import NotificationChannel, NotificationType

from conftest import RecordingDelivery


class StaticMembers:
    def __init__(self, member_ids, failures=0):
        self.member_ids = member_ids
        self.failures = failures
        self.reads = 0

    def get_member_ids(self, workspace_id):
        self.reads += 1
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("replica lagging")
        return list(self.member_ids)


def _factory(repository):
    @contextmanager
    def scope():
        yield repository

    return scope


def _job(**overrides) -> NotifyWorkspaceMembers:
    defaults = dict(
        workspace_id=1,
        notification_type="task_created",
        title="New task",
        message="Task 'Ship it' was created",
        data={"task_id": 7},
        exclude_user_id=1,
    )
    defaults.update(overrides)
    return NotifyWorkspaceMembers(**defaults)


def _runner(delivery, repository, **kwargs) -> JobRunner:
    kwargs.setdefault("wait", wait_none())
    return JobRunner(delivery, _factory(repository), **kwargs)


class TestJobRunner:
    def test_excludes_actor(self):
        delivery = RecordingDelivery()
        runner = _runner(delivery, StaticMembers([1, 2, 3]))

        assert runner.run(_job()) is True
        assert delivery.recipients == {2, 3}

    def test_dedup_key_per_recipient(self):
        delivery = RecordingDelivery()
        job = _job(job_id="evt-1")
        _runner(delivery, StaticMembers([1, 2, 3])).run(job)

        keys = {call["user_id"]: call["data"]["dedup_key"] for call in delivery.calls}
        assert keys == {2: "evt-1:2", 3: "evt-1:3"}
        assert all(call["data"]["task_id"] == 7 for call in delivery.calls)

    def test_severity_and_channels(self):
        delivery = RecordingDelivery()
        job = _job(notification_type="task_completed", channels=[NotificationChannel.email])
        _runner(delivery, StaticMembers([1, 2])).run(job)

        call = delivery.calls[0]
        assert call["notification_type"] == NotificationType.success
        assert call["channels"] == [NotificationChannel.email]

    def test_retries_then_succeeds(self):
        delivery = RecordingDelivery()
        members = StaticMembers([1, 2], failures=2)
        runner = _runner(delivery, members, max_tries=3)

        assert runner.run(_job()) is True
        assert members.reads == 3
        assert len(runner.failed_jobs) == 0
        assert delivery.recipients == {2}

    def test_exhaustion_is_recorded_not_raised(self, caplog):
        members = StaticMembers([1, 2], failures=10)
        runner = _runner(RecordingDelivery(), members, max_tries=3)
        job = _job()

        assert runner.run(job) is False

        assert members.reads == 3
        failed = runner.failed_jobs[0]
        assert failed.job_id == job.job_id
        assert failed.attempts == 3
        assert "replica lagging" in failed.error
        assert job.job_id in caplog.text

    def test_timeout_counts_as_failed_attempt(self):
        class SlowMembers(StaticMembers):
            def get_member_ids(self, workspace_id):
                self.reads += 1
                time.sleep(0.5)
                return list(self.member_ids)

        members = SlowMembers([1, 2])
        runner = _runner(RecordingDelivery(), members, max_tries=2, timeout_seconds=0.05)

        assert runner.run(_job()) is False
        assert members.reads == 2
        assert "timed out" in runner.failed_jobs[0].error

    def test_failed_jobs_keep_only_the_newest(self):
        members = StaticMembers([1, 2], failures=100)
        runner = _runner(RecordingDelivery(), members, max_tries=1, failed_job_limit=2)
        jobs = [_job() for _ in range(5)]

        for job in jobs:
            runner.run(job)

        assert [failed.job_id for failed in runner.failed_jobs] == [jobs[3].job_id, jobs[4].job_id]

    def test_membership_is_read_when_the_job_runs(self):
        delivery = RecordingDelivery()
        members = StaticMembers([1, 2, 3])
        runner = _runner(delivery, members)
        job = _job()

        members.member_ids = [1, 3]
        runner.run(job)

        assert delivery.recipients == {3}


class TestQueues:
    def test_inline_queue_runs_immediately(self):
        delivery = RecordingDelivery()
        queue = InlineJobQueue(_runner(delivery, StaticMembers([1, 2])))
        queue.enqueue(_job())
        assert delivery.recipients == {2}
        assert len(queue.jobs) == 1

    def test_inline_queue_keeps_only_recent_jobs(self):
        delivery = RecordingDelivery()
        queue = InlineJobQueue(_runner(delivery, StaticMembers([1, 2])), history_size=2)
        jobs = [_job() for _ in range(5)]

        for job in jobs:
            queue.enqueue(job)

        assert list(queue.jobs) == jobs[3:]
        assert len(delivery.calls) == 5

    def test_thread_pool_queue(self):
        delivery = RecordingDelivery()
        queue = ThreadPoolJobQueue(_runner(delivery, StaticMembers([1, 2, 3])), workers=2)
        try:
            for _ in range(4):
                queue.enqueue(_job())
            queue.drain(timeout=5)
        finally:
            queue.shutdown()
        assert len(delivery.calls) == 8

    def test_thread_pool_queue_forgets_finished_jobs(self):
        delivery = RecordingDelivery()
        queue = ThreadPoolJobQueue(_runner(delivery, StaticMembers([1, 2])), workers=4)
        for _ in range(50):
            queue.enqueue(_job())

        queue.shutdown(wait=True)

        assert queue.pending == 0
        assert len(delivery.calls) == 50


class TestFanOutHandler:
    def test_one_job_per_event(self):
        jobs = []

        class RecordingQueue:
            def enqueue(self, job):
                jobs.append(job)

        handler = FanOutHandler(RecordingQueue(), channels=["database", "email"])
        task = Task(id=7, title="Ship it", project_id=3)
        event = TaskCreated(actor_id=1, workspace_id=2, task=task)

        handler(event)

        assert len(jobs) == 1
        job = jobs[0]
        assert job.job_id == event.event_id
        assert job.workspace_id == 2
        assert job.exclude_user_id == 1
        assert job.notification_type == "task_created"
        assert job.data["task_id"] == 7
        assert job.channels == [NotificationChannel.database, NotificationChannel.email]

    def test_describe_every_event(self):
        task = Task(id=7, title="Ship it", project_id=3)
        tag, title, message = describe(TaskCompleted(actor_id=1, workspace_id=2, task=task))
        assert tag == "task_completed"
        assert "Ship it" in message


class TestEndToEnd:
    def test_task_created_notifies_other_members(self, service, delivery, project, alice, bob, carol, clock):
        service.create_task(alice.id, project.id, "Ship it", due_date=clock() + timedelta(days=1))
        assert delivery.recipients == {bob.id, carol.id}

    def test_actor_is_never_notified(self, service, delivery, task, bob):
        service.complete_task(bob.id, task.id)
        assert bob.id not in delivery.recipients
        assert len(delivery.calls) == 2

    def test_failed_operation_enqueues_nothing(self, service, container, delivery, task, mallory):
        queued = len(container.queue.jobs)
        with pytest.raises(ForbiddenError):
            service.add_comment_to_task(mallory.id, task.id, "Hello there")
        assert delivery.calls == []
        assert len(container.queue.jobs) == queued

    def test_delivery_failure_does_not_fail_the_request(self, service, container, task, bob):
        container.runner.delivery = RecordingDelivery(failures=100)
        container.runner.wait = wait_none()

        comment = service.add_comment_to_task(bob.id, task.id, "Still saved")

        assert comment.id is not None
        assert len(container.runner.failed_jobs) == 1

    def test_deleted_account_is_not_notified(
        self, service, user_service, delivery, project, alice, bob, carol, clock
    ):
        user_service.delete_user(bob.id, bob.id)

        service.create_task(alice.id, project.id, "Ship it", due_date=clock() + timedelta(days=1))

        assert delivery.recipients == {carol.id}

    def test_job_for_deleted_workspace_notifies_nobody(
        self, service, container, delivery, workspace, alice
    ):
        service.delete_workspace(alice.id, workspace.id)
        job = NotifyWorkspaceMembers(
            workspace_id=workspace.id,
            notification_type="task_created",
            title="New task",
            message="Task 'Ship it' was created",
            exclude_user_id=alice.id,
        )

        assert container.runner.run(job) is True
        assert delivery.calls == []
