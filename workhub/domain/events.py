"""Domain events published after a mutation has been persisted.

``DomainEvent`` is a closed union discriminated by ``event_type``; consumers
``match`` on the concrete classes instead of relying on shared behaviour.
"""

import uuid
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from workhub.core.clock import utcnow
from workhub.domain.entities import Task, TaskAttachment, TaskComment, User


def _uuid() -> str:
    return str(uuid.uuid4())


class BaseEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=_uuid)
    occurred_at: datetime = Field(default_factory=utcnow)
    actor_id: int
    workspace_id: int
    task: Task

    @property
    def channel(self) -> str:
        return f"task.{self.task.id}"

    def broadcast_payload(self) -> dict:
        return {
            "event_type": self.event_type,
            "actor_id": self.actor_id,
            "task": self.task.snapshot(self.occurred_at),
        }


class TaskCreated(BaseEvent):
    event_type: Literal["task_created"] = "task_created"

    @property
    def channel(self) -> str:
        return f"project.{self.task.project_id}"


class TaskCompleted(BaseEvent):
    event_type: Literal["task_completed"] = "task_completed"

    def broadcast_payload(self) -> dict:
        payload = super().broadcast_payload()
        payload["completed_at"] = self.occurred_at.isoformat()
        return payload


class TaskCommentAdded(BaseEvent):
    event_type: Literal["task_comment_added"] = "task_comment_added"
    comment: TaskComment

    def broadcast_payload(self) -> dict:
        payload = super().broadcast_payload()
        payload["comment"] = self.comment.model_dump(mode="json")
        return payload


class TaskCommentUpdated(BaseEvent):
    event_type: Literal["task_comment_updated"] = "task_comment_updated"
    comment: TaskComment

    def broadcast_payload(self) -> dict:
        payload = super().broadcast_payload()
        payload["comment"] = self.comment.model_dump(mode="json")
        return payload


class TaskAttachmentUploaded(BaseEvent):
    event_type: Literal["task_attachment_uploaded"] = "task_attachment_uploaded"
    attachment: TaskAttachment

    def broadcast_payload(self) -> dict:
        payload = super().broadcast_payload()
        payload["attachment"] = self.attachment.model_dump(mode="json")
        return payload


DomainEvent = Annotated[
    Union[
        TaskCreated,
        TaskCompleted,
        TaskCommentAdded,
        TaskCommentUpdated,
        TaskAttachmentUploaded,
    ],
    Field(discriminator="event_type"),
]

domain_event_adapter = TypeAdapter(DomainEvent)

TASK_EVENTS = (
    TaskCreated,
    TaskCompleted,
    TaskCommentAdded,
    TaskCommentUpdated,
    TaskAttachmentUploaded,
)


# -----------------------------
#  Account events
# -----------------------------


class UserEvent(BaseModel):
    """Account lifecycle event. ``actor_id`` is ``None`` for self sign-up."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=_uuid)
    occurred_at: datetime = Field(default_factory=utcnow)
    actor_id: Optional[int] = None
    user: User


class UserCreated(UserEvent):
    event_type: Literal["user_created"] = "user_created"


class UserUpdated(UserEvent):
    event_type: Literal["user_updated"] = "user_updated"
    changed_fields: List[str] = Field(default_factory=list)


class UserDeleted(UserEvent):
    event_type: Literal["user_deleted"] = "user_deleted"


AccountEvent = Annotated[
    Union[UserCreated, UserUpdated, UserDeleted],
    Field(discriminator="event_type"),
]

account_event_adapter = TypeAdapter(AccountEvent)
