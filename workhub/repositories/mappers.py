"""ORM row -> domain entity conversion."""

from workhub.core.clock import ensure_aware
from workhub.domain import entities
from workhub import models


def to_user(row: models.User) -> entities.User:
    return entities.User(
        id=row.id,
        name=row.name,
        email=row.email,
        email_verified_at=ensure_aware(row.email_verified_at),
        is_admin=bool(row.is_admin),
        created_at=ensure_aware(row.created_at),
        deleted_at=ensure_aware(row.deleted_at),
    )


def to_workspace(row: models.Workspace, members_count: int = 0, projects_count: int = 0) -> entities.Workspace:
    return entities.Workspace(
        id=row.id,
        name=row.name,
        slug=row.slug,
        description=row.description,
        status=row.status,
        owner_id=row.owner_id,
        created_at=ensure_aware(row.created_at),
        updated_at=ensure_aware(row.updated_at),
        deleted_at=ensure_aware(row.deleted_at),
        members_count=members_count,
        projects_count=projects_count,
    )


def to_membership(row: models.WorkspaceMember) -> entities.Membership:
    return entities.Membership(
        workspace_id=row.workspace_id,
        user_id=row.user_id,
        role=row.role,
        joined_at=ensure_aware(row.joined_at),
    )


def to_member(member: models.WorkspaceMember, user: models.User) -> entities.Member:
    return entities.Member(
        id=user.id,
        name=user.name,
        email=user.email,
        role=member.role,
        joined_at=ensure_aware(member.joined_at),
    )


def to_project(row: models.Project) -> entities.Project:
    return entities.Project(
        id=row.id,
        name=row.name,
        description=row.description,
        workspace_id=row.workspace_id,
        status=row.status,
        created_at=ensure_aware(row.created_at),
        updated_at=ensure_aware(row.updated_at),
    )


def to_task(row: models.Task) -> entities.Task:
    return entities.Task(
        id=row.id,
        title=row.title,
        description=row.description,
        project_id=row.project_id,
        assigned_to=row.assigned_to,
        status=row.status,
        priority=row.priority,
        due_date=ensure_aware(row.due_date),
        completed_at=ensure_aware(row.completed_at),
        created_at=ensure_aware(row.created_at),
        updated_at=ensure_aware(row.updated_at),
    )


def to_comment(row: models.TaskComment) -> entities.TaskComment:
    return entities.TaskComment(
        id=row.id,
        task_id=row.task_id,
        user_id=row.user_id,
        body=row.body,
        created_at=ensure_aware(row.created_at),
        updated_at=ensure_aware(row.updated_at),
    )


def to_attachment(row: models.TaskAttachment) -> entities.TaskAttachment:
    return entities.TaskAttachment(
        id=row.id,
        task_id=row.task_id,
        user_id=row.user_id,
        file_path=row.file_path,
        file_name=row.file_name,
        mime_type=row.mime_type,
        file_size=row.file_size,
        created_at=ensure_aware(row.created_at),
    )


def to_notification(row: models.Notification) -> entities.Notification:
    return entities.Notification(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        title=row.title,
        message=row.message,
        data=row.data or {},
        action_url=row.action_url,
        read_at=ensure_aware(row.read_at),
        created_at=ensure_aware(row.created_at),
    )
