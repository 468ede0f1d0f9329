"""Immutable domain entities.

Entities never mutate; state changes return a new instance and the service is
responsible for persisting it.
"""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from workhub.core.clock import utcnow
from workhub.core.errors import InvalidTransitionError
from workhub.domain.enums import (
    MemberRole,
    ProjectStatus,
    TaskPriority,
    TaskStatus,
    WorkspaceStatus,
)
from workhub.domain.value_objects import WorkspaceName


class Entity(BaseModel):
    model_config = ConfigDict(frozen=True)

    def with_changes(self, **changes):
        return self.model_copy(update=changes)


class User(Entity):
    id: int
    name: str
    email: str
    email_verified_at: Optional[datetime] = None
    is_admin: bool = False
    created_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_verified(self) -> bool:
        return self.email_verified_at is not None


class Workspace(Entity):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    status: WorkspaceStatus = WorkspaceStatus.active
    owner_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    members_count: int = 0
    projects_count: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == WorkspaceStatus.active

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def with_name(self, name: WorkspaceName, now: Optional[datetime] = None) -> "Workspace":
        return self.with_changes(name=name.value, slug=name.slug, updated_at=now or utcnow())


class Membership(Entity):
    workspace_id: int
    user_id: int
    role: MemberRole
    joined_at: Optional[datetime] = None


class Member(Entity):
    """Membership joined with the user's identity, for listings."""

    id: int
    name: str
    email: str
    role: MemberRole
    joined_at: Optional[datetime] = None


class Project(Entity):
    id: int
    name: str
    description: Optional[str] = None
    workspace_id: int
    status: ProjectStatus = ProjectStatus.active
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == ProjectStatus.active


class Task(Entity):
    id: int
    title: str
    description: Optional[str] = None
    project_id: int
    assigned_to: Optional[int] = None
    status: TaskStatus = TaskStatus.pending
    priority: TaskPriority = TaskPriority.medium
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.completed

    @property
    def is_assigned(self) -> bool:
        return self.assigned_to is not None

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.due_date is None or self.is_completed:
            return False
        return self.due_date < (now or utcnow())

    def transition_to(self, status: TaskStatus, now: Optional[datetime] = None) -> "Task":
        """Return a copy in ``status``; raises ``InvalidTransitionError``."""
        if status == self.status:
            return self
        if not self.status.can_transition_to(status):
            raise InvalidTransitionError(self.status.value, status.value)
        now = now or utcnow()
        completed_at = now if status == TaskStatus.completed else None
        return self.with_changes(status=status, completed_at=completed_at, updated_at=now)

    def mark_as_completed(self, now: Optional[datetime] = None) -> "Task":
        return self.transition_to(TaskStatus.completed, now)

    def snapshot(self, now: Optional[datetime] = None) -> dict:
        data = self.model_dump(mode="json")
        data["is_overdue"] = self.is_overdue(now)
        data["is_completed"] = self.is_completed
        data["is_assigned"] = self.is_assigned
        return data


class TaskComment(Entity):
    id: int
    task_id: int
    user_id: int
    body: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def with_body(self, body: str, now: Optional[datetime] = None) -> "TaskComment":
        return self.with_changes(body=body, updated_at=now or utcnow())

    def is_editable(self, now: datetime, window: Optional[timedelta]) -> bool:
        if not window or self.created_at is None:
            return True
        return now - self.created_at <= window


class TaskAttachment(Entity):
    id: int
    task_id: int
    user_id: int
    file_path: str
    file_name: str
    mime_type: str
    file_size: int
    created_at: Optional[datetime] = None


class Notification(Entity):
    """A stored in-app notification addressed to one user."""

    id: int
    user_id: int
    type: str
    title: str
    message: str
    data: dict = Field(default_factory=dict)
    action_url: Optional[str] = None
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_read(self) -> bool:
        return self.read_at is not None
