import logging
from typing import List, Optional

from sqlalchemy import func

from workhub.domain.entities import Task, TaskComment
from workhub.domain.enums import MemberRole
from workhub.domain.repositories import WorkspaceRepository
from workhub.models import (
    Project as ProjectRow,
    Task as TaskRow,
    TaskAttachment as AttachmentRow,
    TaskComment as CommentRow,
    User as UserRow,
    Workspace as WorkspaceRow,
    WorkspaceMember as MemberRow,
)

from .base import SqlRepository
from .mappers import (
    to_attachment,
    to_comment,
    to_member,
    to_membership,
    to_project,
    to_task,
    to_workspace,
)

logger = logging.getLogger(__name__)

_WORKSPACE_FIELDS = {"name", "slug", "description", "status"}
_PROJECT_FIELDS = {"name", "description", "status"}
_TASK_FIELDS = {
    "title",
    "description",
    "assigned_to",
    "status",
    "priority",
    "due_date",
    "completed_at",
}


def _check_fields(kind: str, fields: dict, allowed: set) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Cannot update {kind} fields: {sorted(unknown)}")


class SqlWorkspaceRepository(SqlRepository, WorkspaceRepository):
    """Workspace aggregate persistence.

    Tombstoned rows (``deleted_at`` set) are invisible to every look-up except
    ``find_deleted_by_id``. Deletes cascade to children at write time, stamping
    every row with the same timestamp so ``restore`` can bring back exactly
    what went away together.
    """

    ### WORKSPACES ###

    def _live_workspace(self, workspace_id: int) -> Optional[WorkspaceRow]:
        return (
            self.db.query(WorkspaceRow)
            .filter(WorkspaceRow.id == workspace_id, WorkspaceRow.deleted_at.is_(None))
            .first()
        )

    def _hydrate(self, row: WorkspaceRow):
        members_count = self.db.query(func.count(MemberRow.id)).filter(
            MemberRow.workspace_id == row.id
        ).scalar()
        projects_count = self.db.query(func.count(ProjectRow.id)).filter(
            ProjectRow.workspace_id == row.id, ProjectRow.deleted_at.is_(None)
        ).scalar()
        return to_workspace(row, members_count or 0, projects_count or 0)

    def find_by_id(self, workspace_id):
        with self._reading():
            row = self._live_workspace(workspace_id)
            return self._hydrate(row) if row else None

    def find_by_slug(self, slug):
        with self._reading():
            row = (
                self.db.query(WorkspaceRow)
                .filter(WorkspaceRow.slug == slug, WorkspaceRow.deleted_at.is_(None))
                .first()
            )
            return self._hydrate(row) if row else None

    def find_by_owner_id(self, owner_id):
        with self._reading():
            rows = (
                self.db.query(WorkspaceRow)
                .filter(WorkspaceRow.owner_id == owner_id, WorkspaceRow.deleted_at.is_(None))
                .order_by(WorkspaceRow.id)
                .all()
            )
            return [self._hydrate(row) for row in rows]

    def find_by_member(self, user_id):
        with self._reading():
            rows = (
                self.db.query(WorkspaceRow)
                .join(MemberRow, MemberRow.workspace_id == WorkspaceRow.id)
                .filter(MemberRow.user_id == user_id, WorkspaceRow.deleted_at.is_(None))
                .order_by(WorkspaceRow.id)
                .all()
            )
            return [self._hydrate(row) for row in rows]

    def find_deleted_by_id(self, workspace_id):
        with self._reading():
            row = (
                self.db.query(WorkspaceRow)
                .filter(WorkspaceRow.id == workspace_id, WorkspaceRow.deleted_at.isnot(None))
                .first()
            )
            return self._hydrate(row) if row else None

    def slug_exists(self, slug, exclude_id=None):
        with self._reading():
            query = self.db.query(WorkspaceRow.id).filter(
                WorkspaceRow.slug == slug, WorkspaceRow.deleted_at.is_(None)
            )
            if exclude_id is not None:
                query = query.filter(WorkspaceRow.id != exclude_id)
            return query.first() is not None

    def create(self, name, slug, description, owner_id):
        now = self.clock()
        row = WorkspaceRow(
            name=name,
            slug=slug,
            description=description,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        with self._writing(f"Workspace slug '{slug}' is already taken"):
            self.db.add(row)
            self.db.flush()
            self.db.add(
                MemberRow(workspace_id=row.id, user_id=owner_id, role=MemberRole.owner, joined_at=now)
            )
        return self.find_by_id(row.id)

    def update(self, workspace_id, **fields):
        _check_fields("workspace", fields, _WORKSPACE_FIELDS)
        with self._reading():
            row = self._live_workspace(workspace_id)
        if row is None:
            return None
        with self._writing(f"Workspace slug '{fields.get('slug')}' is already taken"):
            for key, value in fields.items():
                setattr(row, key, value)
            row.updated_at = self.clock()
        return self.find_by_id(workspace_id)

    def delete(self, workspace_id):
        with self._reading():
            row = self._live_workspace(workspace_id)
        if row is None:
            return None
        now = self.clock()
        with self._writing():
            row.deleted_at = now
            project_ids = [
                project_id
                for (project_id,) in self.db.query(ProjectRow.id).filter(
                    ProjectRow.workspace_id == workspace_id, ProjectRow.deleted_at.is_(None)
                )
            ]
            self._tombstone_projects(project_ids, now)
        logger.info(f"Workspace {workspace_id} soft-deleted with {len(project_ids)} projects")
        return now

    def restore(self, workspace_id):
        with self._reading():
            row = (
                self.db.query(WorkspaceRow)
                .filter(WorkspaceRow.id == workspace_id, WorkspaceRow.deleted_at.isnot(None))
                .first()
            )
        if row is None:
            return None
        stamp = row.deleted_at
        with self._writing(f"Workspace slug '{row.slug}' is already taken"):
            project_ids = [
                project_id
                for (project_id,) in self.db.query(ProjectRow.id).filter(
                    ProjectRow.workspace_id == workspace_id, ProjectRow.deleted_at == stamp
                )
            ]
            task_ids = self._task_ids_for_projects(project_ids, stamp)
            self._set_deleted_at(AttachmentRow, AttachmentRow.task_id, task_ids, None, stamp)
            self._set_deleted_at(CommentRow, CommentRow.task_id, task_ids, None, stamp)
            self._set_deleted_at(TaskRow, TaskRow.id, task_ids, None, stamp)
            self._set_deleted_at(ProjectRow, ProjectRow.id, project_ids, None, stamp)
            row.deleted_at = None
            row.updated_at = self.clock()
        logger.info(f"Workspace {workspace_id} restored with {len(project_ids)} projects")
        return self.find_by_id(workspace_id)

    ### CASCADE HELPERS ###

    def _task_ids_for_projects(self, project_ids: List[int], stamp=None) -> List[int]:
        if not project_ids:
            return []
        query = self.db.query(TaskRow.id).filter(TaskRow.project_id.in_(project_ids))
        if stamp is None:
            query = query.filter(TaskRow.deleted_at.is_(None))
        else:
            query = query.filter(TaskRow.deleted_at == stamp)
        return [task_id for (task_id,) in query]

    def _set_deleted_at(self, model, column, ids, value, current=None) -> None:
        if not ids:
            return
        self.db.flush()
        query = self.db.query(model).filter(column.in_(ids))
        if current is None:
            query = query.filter(model.deleted_at.is_(None))
        else:
            query = query.filter(model.deleted_at == current)
        query.update({model.deleted_at: value}, synchronize_session=False)
        self.db.expire_all()

    def _tombstone_tasks(self, task_ids: List[int], now) -> None:
        self._set_deleted_at(AttachmentRow, AttachmentRow.task_id, task_ids, now)
        self._set_deleted_at(CommentRow, CommentRow.task_id, task_ids, now)
        self._set_deleted_at(TaskRow, TaskRow.id, task_ids, now)

    def _tombstone_projects(self, project_ids: List[int], now) -> None:
        self._tombstone_tasks(self._task_ids_for_projects(project_ids), now)
        self._set_deleted_at(ProjectRow, ProjectRow.id, project_ids, now)

    ### MEMBERSHIP ###

    def _member_row(self, workspace_id: int, user_id: int) -> Optional[MemberRow]:
        return (
            self.db.query(MemberRow)
            .filter(MemberRow.workspace_id == workspace_id, MemberRow.user_id == user_id)
            .first()
        )

    def is_member(self, workspace_id, user_id):
        with self._reading():
            return (
                self.db.query(MemberRow.id)
                .join(WorkspaceRow, WorkspaceRow.id == MemberRow.workspace_id)
                .filter(
                    MemberRow.workspace_id == workspace_id,
                    MemberRow.user_id == user_id,
                    WorkspaceRow.deleted_at.is_(None),
                )
                .first()
                is not None
            )

    def get_membership(self, workspace_id, user_id):
        with self._reading():
            row = self._member_row(workspace_id, user_id)
        return to_membership(row) if row else None

    def add_member(self, workspace_id, user_id, role):
        with self._reading():
            row = self._member_row(workspace_id, user_id)
        with self._writing(f"User {user_id} is already a member of workspace {workspace_id}"):
            if row is None:
                row = MemberRow(workspace_id=workspace_id, user_id=user_id)
                self.db.add(row)
            row.role = role
            row.joined_at = self.clock()
        return to_membership(row)

    def remove_member(self, workspace_id, user_id):
        with self._writing():
            removed = (
                self.db.query(MemberRow)
                .filter(MemberRow.workspace_id == workspace_id, MemberRow.user_id == user_id)
                .delete(synchronize_session=False)
            )
        return removed

    def update_member_role(self, workspace_id, user_id, role):
        with self._reading():
            row = self._member_row(workspace_id, user_id)
        if row is None:
            return None
        with self._writing():
            row.role = role
        return to_membership(row)

    def get_members(self, workspace_id):
        with self._reading():
            rows = (
                self.db.query(MemberRow, UserRow)
                .join(UserRow, UserRow.id == MemberRow.user_id)
                .filter(MemberRow.workspace_id == workspace_id, UserRow.deleted_at.is_(None))
                .order_by(MemberRow.joined_at, MemberRow.id)
                .all()
            )
        return [to_member(member, user) for member, user in rows]

    def get_member_ids(self, workspace_id):
        with self._reading():
            rows = (
                self.db.query(MemberRow.user_id)
                .join(UserRow, UserRow.id == MemberRow.user_id)
                .join(WorkspaceRow, WorkspaceRow.id == MemberRow.workspace_id)
                .filter(
                    MemberRow.workspace_id == workspace_id,
                    UserRow.deleted_at.is_(None),
                    WorkspaceRow.deleted_at.is_(None),
                )
                .order_by(MemberRow.id)
                .all()
            )
        return [user_id for (user_id,) in rows]

    ### PROJECTS ###

    def _live_project(self, project_id: int) -> Optional[ProjectRow]:
        return (
            self.db.query(ProjectRow)
            .filter(ProjectRow.id == project_id, ProjectRow.deleted_at.is_(None))
            .first()
        )

    def find_project_by_id(self, project_id):
        with self._reading():
            row = self._live_project(project_id)
        return to_project(row) if row else None

    def get_projects_by_workspace(self, workspace_id):
        with self._reading():
            rows = (
                self.db.query(ProjectRow)
                .filter(ProjectRow.workspace_id == workspace_id, ProjectRow.deleted_at.is_(None))
                .order_by(ProjectRow.id)
                .all()
            )
        return [to_project(row) for row in rows]

    def create_project(self, workspace_id, name, description):
        now = self.clock()
        row = ProjectRow(
            workspace_id=workspace_id,
            name=name,
            description=description,
            created_at=now,
            updated_at=now,
        )
        with self._writing():
            self.db.add(row)
        return to_project(row)

    def update_project(self, project_id, **fields):
        _check_fields("project", fields, _PROJECT_FIELDS)
        with self._reading():
            row = self._live_project(project_id)
        if row is None:
            return None
        with self._writing():
            for key, value in fields.items():
                setattr(row, key, value)
            row.updated_at = self.clock()
        return to_project(row)

    def delete_project(self, project_id):
        with self._reading():
            row = self._live_project(project_id)
        if row is None:
            return False
        with self._writing():
            self._tombstone_projects([project_id], self.clock())
        return True

    ### TASKS ###

    def _live_task(self, task_id: int) -> Optional[TaskRow]:
        return (
            self.db.query(TaskRow)
            .filter(TaskRow.id == task_id, TaskRow.deleted_at.is_(None))
            .first()
        )

    def find_task_by_id(self, task_id):
        with self._reading():
            row = self._live_task(task_id)
        return to_task(row) if row else None

    def get_tasks_by_project(self, project_id):
        with self._reading():
            rows = (
                self.db.query(TaskRow)
                .filter(TaskRow.project_id == project_id, TaskRow.deleted_at.is_(None))
                .order_by(TaskRow.id)
                .all()
            )
        return [to_task(row) for row in rows]

    def create_task(self, project_id, **fields):
        _check_fields("task", fields, _TASK_FIELDS)
        now = self.clock()
        row = TaskRow(project_id=project_id, created_at=now, updated_at=now, **fields)
        with self._writing():
            self.db.add(row)
        return to_task(row)

    def save_task(self, task: Task):
        with self._reading():
            row = self._live_task(task.id)
        if row is None:
            return None
        with self._writing():
            for key in _TASK_FIELDS:
                setattr(row, key, getattr(task, key))
            row.updated_at = task.updated_at or self.clock()
        return to_task(row)

    def delete_task(self, task_id):
        with self._reading():
            row = self._live_task(task_id)
        if row is None:
            return False
        with self._writing():
            self._tombstone_tasks([task_id], self.clock())
        return True

    def workspace_id_for_project(self, project_id):
        with self._reading():
            row = (
                self.db.query(ProjectRow.workspace_id)
                .join(WorkspaceRow, WorkspaceRow.id == ProjectRow.workspace_id)
                .filter(
                    ProjectRow.id == project_id,
                    ProjectRow.deleted_at.is_(None),
                    WorkspaceRow.deleted_at.is_(None),
                )
                .first()
            )
        return row[0] if row else None

    def workspace_id_for_task(self, task_id):
        with self._reading():
            row = (
                self.db.query(ProjectRow.workspace_id)
                .join(TaskRow, TaskRow.project_id == ProjectRow.id)
                .join(WorkspaceRow, WorkspaceRow.id == ProjectRow.workspace_id)
                .filter(
                    TaskRow.id == task_id,
                    TaskRow.deleted_at.is_(None),
                    ProjectRow.deleted_at.is_(None),
                    WorkspaceRow.deleted_at.is_(None),
                )
                .first()
            )
        return row[0] if row else None

    ### COMMENTS ###

    def _live_comment(self, comment_id: int) -> Optional[CommentRow]:
        return (
            self.db.query(CommentRow)
            .filter(CommentRow.id == comment_id, CommentRow.deleted_at.is_(None))
            .first()
        )

    def find_comment_by_id(self, comment_id):
        with self._reading():
            row = self._live_comment(comment_id)
        return to_comment(row) if row else None

    def get_comments_by_task(self, task_id):
        with self._reading():
            rows = (
                self.db.query(CommentRow)
                .filter(CommentRow.task_id == task_id, CommentRow.deleted_at.is_(None))
                .order_by(CommentRow.created_at, CommentRow.id)
                .all()
            )
        return [to_comment(row) for row in rows]

    def add_comment(self, task_id, user_id, body):
        now = self.clock()
        row = CommentRow(task_id=task_id, user_id=user_id, body=body, created_at=now, updated_at=now)
        with self._writing():
            self.db.add(row)
        return to_comment(row)

    def save_comment(self, comment: TaskComment):
        with self._reading():
            row = self._live_comment(comment.id)
        if row is None:
            return None
        with self._writing():
            row.body = comment.body
            row.updated_at = comment.updated_at or self.clock()
        return to_comment(row)

    def delete_comment(self, comment_id):
        with self._reading():
            row = self._live_comment(comment_id)
        if row is None:
            return False
        with self._writing():
            row.deleted_at = self.clock()
        return True

    ### ATTACHMENTS ###

    def _live_attachment(self, attachment_id: int) -> Optional[AttachmentRow]:
        return (
            self.db.query(AttachmentRow)
            .filter(AttachmentRow.id == attachment_id, AttachmentRow.deleted_at.is_(None))
            .first()
        )

    def find_attachment_by_id(self, attachment_id):
        with self._reading():
            row = self._live_attachment(attachment_id)
        return to_attachment(row) if row else None

    def get_attachments_by_task(self, task_id):
        with self._reading():
            rows = (
                self.db.query(AttachmentRow)
                .filter(AttachmentRow.task_id == task_id, AttachmentRow.deleted_at.is_(None))
                .order_by(AttachmentRow.created_at, AttachmentRow.id)
                .all()
            )
        return [to_attachment(row) for row in rows]

    def add_attachment(self, task_id, user_id, file_path, file_name, mime_type, file_size):
        row = AttachmentRow(
            task_id=task_id,
            user_id=user_id,
            file_path=file_path,
            file_name=file_name,
            mime_type=mime_type,
            file_size=file_size,
            created_at=self.clock(),
        )
        with self._writing():
            self.db.add(row)
        return to_attachment(row)

    def delete_attachment(self, attachment_id):
        with self._reading():
            row = self._live_attachment(attachment_id)
        if row is None:
            return False
        with self._writing():
            row.deleted_at = self.clock()
        return True
