"""Event bus subscribers.

None of these block on slow I/O: the fan-out handler only enqueues a job and
the broadcast handler hands a payload to the broadcaster.
"""

import logging
from typing import Iterable, Optional, Tuple

from workhub.domain.events import (
    BaseEvent,
    TaskAttachmentUploaded,
    TaskCommentAdded,
    TaskCommentUpdated,
    TaskCompleted,
    TaskCreated,
    UserCreated,
    UserEvent,
)
from workhub.events.channels import Broadcaster
from workhub.jobs.notify_workspace_members import NotifyWorkspaceMembers
from workhub.jobs.queue import JobQueue
from workhub.jobs.send_welcome_email import SendWelcomeEmail
from workhub.notifications.enums import NotificationChannel

audit_logger = logging.getLogger("workhub.audit")
logger = logging.getLogger(__name__)


class AuditLogHandler:
    def __init__(self, audit: logging.Logger = audit_logger):
        self.audit = audit

    def __call__(self, event) -> None:
        if isinstance(event, UserEvent):
            self.audit.info(
                "event=%s event_id=%s actor_id=%s user_id=%s",
                event.event_type,
                event.event_id,
                event.actor_id,
                event.user.id,
            )
            return
        self.audit.info(
            "event=%s event_id=%s actor_id=%s workspace_id=%s task_id=%s",
            event.event_type,
            event.event_id,
            event.actor_id,
            event.workspace_id,
            event.task.id,
        )


def describe(event: BaseEvent) -> Tuple[str, str, str]:
    """Return (notification type tag, title, message) for an event."""
    title = event.task.title
    match event:
        case TaskCreated():
            return "task_created", "New task", f"Task '{title}' was created"
        case TaskCompleted():
            return "task_completed", "Task completed", f"Task '{title}' was completed"
        case TaskCommentAdded():
            return "task_comment_added", "New comment", f"New comment on task '{title}'"
        case TaskCommentUpdated():
            return "task_comment_updated", "Comment edited", f"A comment on task '{title}' was edited"
        case TaskAttachmentUploaded(attachment=attachment):
            return (
                "task_attachment_uploaded",
                "New attachment",
                f"'{attachment.file_name}' was attached to task '{title}'",
            )
    raise TypeError(f"Unhandled event type: {type(event).__name__}")


class FanOutHandler:
    """Turns each event into exactly one ``NotifyWorkspaceMembers`` job."""

    def __init__(self, queue: JobQueue, channels: Optional[Iterable[NotificationChannel]] = None):
        self.queue = queue
        self.channels = [NotificationChannel(c) for c in (channels or [NotificationChannel.database])]

    def build_job(self, event: BaseEvent) -> NotifyWorkspaceMembers:
        notification_type, title, message = describe(event)
        return NotifyWorkspaceMembers(
            job_id=event.event_id,
            workspace_id=event.workspace_id,
            notification_type=notification_type,
            title=title,
            message=message,
            data={
                "event_id": event.event_id,
                "task_id": event.task.id,
                "task_title": event.task.title,
                "project_id": event.task.project_id,
            },
            action_url=f"/tasks/{event.task.id}",
            exclude_user_id=event.actor_id,
            channels=self.channels,
        )

    def __call__(self, event: BaseEvent) -> None:
        job = self.build_job(event)
        self.queue.enqueue(job)
        logger.info(f"Fan-out job {job.job_id} enqueued for {event.event_type}")


class BroadcastHandler:
    def __init__(self, broadcaster: Broadcaster):
        self.broadcaster = broadcaster

    def __call__(self, event: BaseEvent) -> None:
        self.broadcaster.broadcast(event.channel, event.broadcast_payload())


class WelcomeEmailHandler:
    """Queues a ``SendWelcomeEmail`` job for every new account."""

    def __init__(self, queue: JobQueue, project_name: str = "Workhub"):
        self.queue = queue
        self.project_name = project_name

    def __call__(self, event: UserCreated) -> None:
        job = SendWelcomeEmail(
            job_id=event.event_id,
            user_id=event.user.id,
            name=event.user.name,
            project_name=self.project_name,
        )
        self.queue.enqueue(job)
        logger.info(f"Welcome email job {job.job_id} enqueued for user {event.user.id}")
