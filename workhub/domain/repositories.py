"""Persistence ports the domain depends on.

Look-ups return ``None`` when a row is missing or tombstoned; they never raise
for that case. Storage failures surface as ``PersistenceError`` and
uniqueness violations as ``ConflictError``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from workhub.domain.entities import (
    Member,
    Membership,
    Notification,
    Project,
    Task,
    TaskAttachment,
    TaskComment,
    User,
    Workspace,
)
from workhub.domain.enums import MemberRole


class UserRepository(ABC):
    @abstractmethod
    def find_by_id(self, user_id: int) -> Optional[User]:
        ...

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    def create(self, name: str, email: str, is_admin: bool = False) -> User:
        ...

    @abstractmethod
    def update(self, user_id: int, **fields) -> Optional[User]:
        ...

    @abstractmethod
    def delete(self, user_id: int) -> bool:
        ...


class WorkspaceRepository(ABC):
    # Workspaces

    @abstractmethod
    def find_by_id(self, workspace_id: int) -> Optional[Workspace]:
        ...

    @abstractmethod
    def find_by_slug(self, slug: str) -> Optional[Workspace]:
        ...

    @abstractmethod
    def find_by_owner_id(self, owner_id: int) -> List[Workspace]:
        ...

    @abstractmethod
    def find_by_member(self, user_id: int) -> List[Workspace]:
        ...

    @abstractmethod
    def slug_exists(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        ...

    @abstractmethod
    def create(
        self, name: str, slug: str, description: Optional[str], owner_id: int
    ) -> Workspace:
        """Persist a workspace and its owner's membership row together."""

    @abstractmethod
    def update(self, workspace_id: int, **fields) -> Optional[Workspace]:
        ...

    @abstractmethod
    def delete(self, workspace_id: int) -> Optional[datetime]:
        """Tombstone the workspace and everything under it.

        Returns the tombstone timestamp, or ``None`` if nothing was deleted.
        """

    @abstractmethod
    def restore(self, workspace_id: int) -> Optional[Workspace]:
        ...

    @abstractmethod
    def find_deleted_by_id(self, workspace_id: int) -> Optional[Workspace]:
        ...

    # Membership

    @abstractmethod
    def is_member(self, workspace_id: int, user_id: int) -> bool:
        ...

    @abstractmethod
    def get_membership(self, workspace_id: int, user_id: int) -> Optional[Membership]:
        ...

    @abstractmethod
    def add_member(self, workspace_id: int, user_id: int, role: MemberRole) -> Membership:
        """Insert or update the single membership row for the pair."""

    @abstractmethod
    def remove_member(self, workspace_id: int, user_id: int) -> int:
        ...

    @abstractmethod
    def update_member_role(
        self, workspace_id: int, user_id: int, role: MemberRole
    ) -> Optional[Membership]:
        ...

    @abstractmethod
    def get_members(self, workspace_id: int) -> List[Member]:
        ...

    @abstractmethod
    def get_member_ids(self, workspace_id: int) -> List[int]:
        """Ids of live members of a live workspace; empty once it is deleted."""

    # Projects

    @abstractmethod
    def find_project_by_id(self, project_id: int) -> Optional[Project]:
        ...

    @abstractmethod
    def get_projects_by_workspace(self, workspace_id: int) -> List[Project]:
        ...

    @abstractmethod
    def create_project(
        self, workspace_id: int, name: str, description: Optional[str]
    ) -> Project:
        ...

    @abstractmethod
    def update_project(self, project_id: int, **fields) -> Optional[Project]:
        ...

    @abstractmethod
    def delete_project(self, project_id: int) -> bool:
        ...

    # Tasks

    @abstractmethod
    def find_task_by_id(self, task_id: int) -> Optional[Task]:
        ...

    @abstractmethod
    def get_tasks_by_project(self, project_id: int) -> List[Task]:
        ...

    @abstractmethod
    def create_task(self, project_id: int, **fields) -> Task:
        ...

    @abstractmethod
    def save_task(self, task: Task) -> Optional[Task]:
        ...

    @abstractmethod
    def delete_task(self, task_id: int) -> bool:
        ...

    @abstractmethod
    def workspace_id_for_project(self, project_id: int) -> Optional[int]:
        ...

    @abstractmethod
    def workspace_id_for_task(self, task_id: int) -> Optional[int]:
        ...

    # Comments

    @abstractmethod
    def find_comment_by_id(self, comment_id: int) -> Optional[TaskComment]:
        ...

    @abstractmethod
    def get_comments_by_task(self, task_id: int) -> List[TaskComment]:
        ...

    @abstractmethod
    def add_comment(self, task_id: int, user_id: int, body: str) -> TaskComment:
        ...

    @abstractmethod
    def save_comment(self, comment: TaskComment) -> Optional[TaskComment]:
        ...

    @abstractmethod
    def delete_comment(self, comment_id: int) -> bool:
        ...

    # Attachments

    @abstractmethod
    def find_attachment_by_id(self, attachment_id: int) -> Optional[TaskAttachment]:
        ...

    @abstractmethod
    def get_attachments_by_task(self, task_id: int) -> List[TaskAttachment]:
        ...

    @abstractmethod
    def add_attachment(
        self,
        task_id: int,
        user_id: int,
        file_path: str,
        file_name: str,
        mime_type: str,
        file_size: int,
    ) -> TaskAttachment:
        ...

    @abstractmethod
    def delete_attachment(self, attachment_id: int) -> bool:
        ...


class NotificationRepository(ABC):
    """Stored notifications; every operation is scoped to the owning user."""

    @abstractmethod
    def find_for_user(self, user_id: int, unread_only: bool = False) -> List[Notification]:
        """Newest first."""

    @abstractmethod
    def mark_as_read(self, notification_id: int, user_id: int) -> Optional[Notification]:
        ...

    @abstractmethod
    def delete(self, notification_id: int, user_id: int) -> bool:
        ...
