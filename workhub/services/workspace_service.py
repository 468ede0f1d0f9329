import logging
import random
import string
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import TypeAdapter

from workhub.core.cache import Cache
from workhub.core.clock import Clock, ensure_aware, utcnow
from workhub.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from workhub.domain.entities import (
    Member,
    Membership,
    Project,
    Task,
    TaskAttachment,
    TaskComment,
    Workspace,
)
from workhub.domain.enums import MemberRole, TaskPriority, TaskStatus
from workhub.domain.events import (
    TaskAttachmentUploaded,
    TaskCommentAdded,
    TaskCommentUpdated,
    TaskCompleted,
    TaskCreated,
)
from workhub.domain.repositories import UserRepository, WorkspaceRepository
from workhub.domain.schemas import AttachmentUpload, ProjectUpdate, TaskUpdate, WorkspaceUpdate
from workhub.domain.value_objects import (
    ATTACHMENT_NAMESPACE,
    CommentContent,
    FileName,
    FilePath,
    ProjectName,
    TaskTitle,
    WorkspaceName,
)
from workhub.events.bus import EventBus
from workhub.services.policies import Policies
from workhub.storage.local import FileStorage

logger = logging.getLogger(__name__)

_workspace_adapter = TypeAdapter(Workspace)
_comments_adapter = TypeAdapter(List[TaskComment])
_attachments_adapter = TypeAdapter(List[TaskAttachment])

# Friendly suffixes used to suggest free slugs on a collision
FRIENDLY_SUFFIXES = [
    "hub", "space", "team", "studio", "hq", "zone", "lab", "base", "deck", "works"
]


def suggest_alternate_slugs(slug: str, repository: WorkspaceRepository, count: int = 5) -> List[str]:
    """Suggest readable slugs that are not taken yet."""
    suggestions = []

    for suffix in FRIENDLY_SUFFIXES:
        candidate = f"{slug}-{suffix}"
        if not repository.slug_exists(candidate):
            suggestions.append(candidate)
        if len(suggestions) >= count:
            return suggestions

    attempts = 0
    while len(suggestions) < count and attempts < count * 10:
        attempts += 1
        rand_suffix = "".join(random.choices(string.ascii_lowercase, k=4))
        candidate = f"{slug}-{rand_suffix}"
        if candidate not in suggestions and not repository.slug_exists(candidate):
            suggestions.append(candidate)

    return suggestions


def workspace_cache_keys(workspace: Workspace) -> List[str]:
    return [f"workspace:{workspace.id}", f"workspace:slug:{workspace.slug}"]


def comments_cache_key(task_id: int) -> str:
    return f"task:{task_id}:comments"


def attachments_cache_key(task_id: int) -> str:
    return f"task:{task_id}:attachments"


class WorkspaceService:
    """Orchestrates every workspace, project and task operation.

    Mutations follow one order: load the primary resource, authorize the
    actor, validate the input, persist, invalidate cached keys, and only then
    publish the domain event. Any failure before the publish step leaves the
    bus untouched.
    """

    def __init__(
        self,
        repository: WorkspaceRepository,
        users: UserRepository,
        policies: Policies,
        bus: EventBus,
        cache: Cache,
        storage: FileStorage,
        settings,
        clock: Clock = utcnow,
    ):
        self.repository = repository
        self.users = users
        self.policies = policies
        self.bus = bus
        self.cache = cache
        self.storage = storage
        self.settings = settings
        self.clock = clock

    ### LOADERS ###

    def _load_workspace(self, workspace_id: int) -> Workspace:
        workspace = self.repository.find_by_id(workspace_id)
        if workspace is None:
            raise NotFoundError("Workspace", workspace_id)
        return workspace

    def _load_project(self, project_id: int) -> Project:
        project = self.repository.find_project_by_id(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    def _load_task(self, task_id: int) -> Task:
        task = self.repository.find_task_by_id(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    def _load_comment(self, comment_id: int) -> TaskComment:
        comment = self.repository.find_comment_by_id(comment_id)
        if comment is None:
            raise NotFoundError("Comment", comment_id)
        return comment

    def _load_attachment(self, attachment_id: int) -> TaskAttachment:
        attachment = self.repository.find_attachment_by_id(attachment_id)
        if attachment is None:
            raise NotFoundError("Attachment", attachment_id)
        return attachment

    def _forget_workspace(self, *workspaces: Workspace) -> None:
        keys = []
        for workspace in workspaces:
            keys.extend(workspace_cache_keys(workspace))
        self.cache.forget(*keys)

    ### WORKSPACE SERVICES ###

    def create_workspace(self, actor_id: int, name: str, description: Optional[str] = None) -> Workspace:
        workspace_name = WorkspaceName(name)
        if self.repository.slug_exists(workspace_name.slug):
            raise ConflictError(
                f"Workspace slug '{workspace_name.slug}' already exists.",
                suggestions=suggest_alternate_slugs(workspace_name.slug, self.repository),
            )

        workspace = self.repository.create(
            name=workspace_name.value,
            slug=workspace_name.slug,
            description=description,
            owner_id=actor_id,
        )
        logger.info(f"Workspace {workspace.id} ({workspace.slug}) created by user {actor_id}")
        return workspace

    def get_workspace(self, actor_id: int, workspace_id: int) -> Workspace:
        workspace = self.cache.remember(
            f"workspace:{workspace_id}",
            self.settings.WORKSPACE_CACHE_TTL,
            lambda: self.repository.find_by_id(workspace_id),
            _workspace_adapter,
        )
        if workspace is None:
            raise NotFoundError("Workspace", workspace_id)
        if not self.policies.can_view_workspace(actor_id, workspace):
            raise ForbiddenError("view", "workspace")
        return workspace

    def get_workspace_by_slug(self, actor_id: int, slug: str) -> Workspace:
        workspace = self.cache.remember(
            f"workspace:slug:{slug}",
            self.settings.WORKSPACE_CACHE_TTL,
            lambda: self.repository.find_by_slug(slug),
            _workspace_adapter,
        )
        if workspace is None:
            raise NotFoundError("Workspace", slug)
        if not self.policies.can_view_workspace(actor_id, workspace):
            raise ForbiddenError("view", "workspace")
        return workspace

    def list_workspaces_for_user(self, actor_id: int) -> List[Workspace]:
        return self.repository.find_by_member(actor_id)

    def update_workspace(self, actor_id: int, workspace_id: int, data: WorkspaceUpdate) -> Workspace:
        workspace = self._load_workspace(workspace_id)
        if not self.policies.can_update_workspace(actor_id, workspace):
            raise ForbiddenError("update", "workspace")

        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update", rule="required")
        if "name" in changes:
            workspace_name = WorkspaceName(changes["name"])
            if self.repository.slug_exists(workspace_name.slug, exclude_id=workspace_id):
                raise ConflictError(
                    f"Workspace slug '{workspace_name.slug}' already exists.",
                    suggestions=suggest_alternate_slugs(workspace_name.slug, self.repository),
                )
            changes["name"] = workspace_name.value
            changes["slug"] = workspace_name.slug
        if changes.get("status", workspace.status) is None:
            raise ValidationError("Workspace status cannot be empty", rule="required")

        updated = self.repository.update(workspace_id, **changes)
        if updated is None:
            raise NotFoundError("Workspace", workspace_id)
        self._forget_workspace(workspace, updated)
        return updated

    def delete_workspace(self, actor_id: int, workspace_id: int) -> None:
        workspace = self._load_workspace(workspace_id)
        if not self.policies.can_delete_workspace(actor_id, workspace):
            raise ForbiddenError("delete", "workspace")

        self.repository.delete(workspace_id)
        self._forget_workspace(workspace)
        logger.info(f"Workspace {workspace_id} deleted by user {actor_id}")

    def restore_workspace(self, actor_id: int, workspace_id: int) -> Workspace:
        workspace = self.repository.find_deleted_by_id(workspace_id)
        if workspace is None:
            raise NotFoundError("Workspace", workspace_id)
        if not self.policies.can_delete_workspace(actor_id, workspace):
            raise ForbiddenError("restore", "workspace")
        if self.repository.slug_exists(workspace.slug):
            raise ConflictError(
                f"Workspace slug '{workspace.slug}' has been taken since deletion.",
                suggestions=suggest_alternate_slugs(workspace.slug, self.repository),
            )

        restored = self.repository.restore(workspace_id)
        if restored is None:
            raise NotFoundError("Workspace", workspace_id)
        self._forget_workspace(restored)
        logger.info(f"Workspace {workspace_id} restored by user {actor_id}")
        return restored

    ### MEMBERSHIP SERVICES ###

    def add_member_to_workspace(
        self, actor_id: int, workspace_id: int, user_id: int, role: MemberRole = MemberRole.member
    ) -> Membership:
        workspace = self._load_workspace(workspace_id)
        if not self.policies.can_manage_members(actor_id, workspace):
            raise ForbiddenError("manage members of", "workspace")
        if self.users.find_by_id(user_id) is None:
            raise NotFoundError("User", user_id)

        membership = self.repository.add_member(workspace_id, user_id, MemberRole(role))
        self._forget_workspace(workspace)
        logger.info(f"User {user_id} added to workspace {workspace_id} as {membership.role.value}")
        return membership

    def remove_member_from_workspace(self, actor_id: int, workspace_id: int, user_id: int) -> bool:
        workspace = self._load_workspace(workspace_id)
        if not self.policies.can_manage_members(actor_id, workspace):
            raise ForbiddenError("manage members of", "workspace")
        if user_id == workspace.owner_id:
            raise ValidationError("The workspace owner cannot be removed", rule="owner_membership")

        removed = self.repository.remove_member(workspace_id, user_id)
        self._forget_workspace(workspace)
        if removed:
            logger.info(f"User {user_id} removed from workspace {workspace_id}")
        return removed > 0

    def update_member_role(
        self, actor_id: int, workspace_id: int, user_id: int, role: MemberRole
    ) -> Membership:
        workspace = self._load_workspace(workspace_id)
        if not self.policies.can_manage_members(actor_id, workspace):
            raise ForbiddenError("manage members of", "workspace")

        membership = self.repository.update_member_role(workspace_id, user_id, MemberRole(role))
        if membership is None:
            raise NotFoundError("Member", user_id)
        self._forget_workspace(workspace)
        return membership

    def get_workspace_members(self, actor_id: int, workspace_id: int) -> List[Member]:
        workspace = self._load_workspace(workspace_id)
        if not self.policies.can_view_workspace(actor_id, workspace):
            raise ForbiddenError("view", "workspace")
        return self.repository.get_members(workspace_id)

    ### PROJECT SERVICES ###

    def create_project(
        self, actor_id: int, workspace_id: int, name: str, description: Optional[str] = None
    ) -> Project:
        workspace = self._load_workspace(workspace_id)
        if not self.policies.can_create_project(actor_id, workspace):
            raise ForbiddenError("create projects in", "workspace")
        project_name = ProjectName(name)

        project = self.repository.create_project(workspace_id, project_name.value, description)
        self._forget_workspace(workspace)
        return project

    def get_project(self, actor_id: int, project_id: int) -> Project:
        project = self._load_project(project_id)
        if not self.policies.can_view_project(actor_id, project):
            raise ForbiddenError("view", "project")
        return project

    def list_projects(self, actor_id: int, workspace_id: int) -> List[Project]:
        workspace = self._load_workspace(workspace_id)
        if not self.policies.can_view_workspace(actor_id, workspace):
            raise ForbiddenError("view", "workspace")
        return self.repository.get_projects_by_workspace(workspace_id)

    def update_project(self, actor_id: int, project_id: int, data: ProjectUpdate) -> Project:
        project = self._load_project(project_id)
        if not self.policies.can_update_project(actor_id, project):
            raise ForbiddenError("update", "project")

        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update", rule="required")
        if "name" in changes:
            changes["name"] = ProjectName(changes["name"]).value
        if "status" in changes and changes["status"] is None:
            raise ValidationError("Project status cannot be empty", rule="required")

        updated = self.repository.update_project(project_id, **changes)
        if updated is None:
            raise NotFoundError("Project", project_id)
        return updated

    def delete_project(self, actor_id: int, project_id: int) -> None:
        project = self._load_project(project_id)
        if not self.policies.can_delete_project(actor_id, project):
            raise ForbiddenError("delete", "project")

        workspace = self._load_workspace(project.workspace_id)
        task_ids = [task.id for task in self.repository.get_tasks_by_project(project_id)]
        self.repository.delete_project(project_id)
        keys = workspace_cache_keys(workspace)
        for task_id in task_ids:
            keys.extend([comments_cache_key(task_id), attachments_cache_key(task_id)])
        self.cache.forget(*keys)

    ### TASK SERVICES ###

    def _check_due_date(self, due_date: Optional[datetime]) -> Optional[datetime]:
        due_date = ensure_aware(due_date)
        if due_date is not None and due_date < self.clock():
            raise ValidationError("Due date cannot be in the past", rule="due_date")
        return due_date

    def _check_assignee(self, workspace_id: int, assigned_to: Optional[int]) -> None:
        if assigned_to is not None and not self.repository.is_member(workspace_id, assigned_to):
            raise ValidationError("Assignee must be a member of the workspace", rule="assignee")

    def create_task(
        self,
        actor_id: int,
        project_id: int,
        title: str,
        description: Optional[str] = None,
        assigned_to: Optional[int] = None,
        priority: TaskPriority = TaskPriority.medium,
        due_date: Optional[datetime] = None,
    ) -> Task:
        project = self._load_project(project_id)
        if not self.policies.can_create_task(actor_id, project):
            raise ForbiddenError("create tasks in", "project")

        task_title = TaskTitle(title)
        due_date = self._check_due_date(due_date)
        self._check_assignee(project.workspace_id, assigned_to)

        task = self.repository.create_task(
            project_id,
            title=task_title.value,
            description=description,
            assigned_to=assigned_to,
            priority=TaskPriority(priority),
            due_date=due_date,
        )
        self.bus.publish(
            TaskCreated(actor_id=actor_id, workspace_id=project.workspace_id, task=task)
        )
        return task

    def get_task(self, actor_id: int, task_id: int) -> Task:
        task = self._load_task(task_id)
        if not self.policies.can_view_task(actor_id, task):
            raise ForbiddenError("view", "task")
        return task

    def list_tasks(self, actor_id: int, project_id: int) -> List[Task]:
        project = self._load_project(project_id)
        if not self.policies.can_view_project(actor_id, project):
            raise ForbiddenError("view", "project")
        return self.repository.get_tasks_by_project(project_id)

    def update_task(self, actor_id: int, task_id: int, data: TaskUpdate) -> Task:
        task = self._load_task(task_id)
        if not self.policies.can_update_task(actor_id, task):
            raise ForbiddenError("update", "task")

        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update", rule="required")

        now = self.clock()
        updated = task
        if "status" in changes:
            status = changes.pop("status")
            if status is None:
                raise ValidationError("Task status cannot be empty", rule="required")
            updated = updated.transition_to(TaskStatus(status), now)
        if "title" in changes:
            changes["title"] = TaskTitle(changes["title"]).value
        if "due_date" in changes:
            changes["due_date"] = self._check_due_date(changes["due_date"])
        if "priority" in changes and changes["priority"] is None:
            raise ValidationError("Task priority cannot be empty", rule="required")
        workspace_id = self.repository.workspace_id_for_task(task_id)
        if "assigned_to" in changes:
            self._check_assignee(workspace_id, changes["assigned_to"])

        updated = updated.with_changes(updated_at=now, **changes)
        saved = self.repository.save_task(updated)
        if saved is None:
            raise NotFoundError("Task", task_id)
        if saved.is_completed and not task.is_completed:
            self.bus.publish(
                TaskCompleted(actor_id=actor_id, workspace_id=workspace_id, task=saved)
            )
        return saved

    def complete_task(self, actor_id: int, task_id: int) -> Task:
        task = self._load_task(task_id)
        if not self.policies.can_complete_task(actor_id, task):
            raise ForbiddenError("complete", "task")

        if task.is_completed:
            logger.info(f"Task {task_id} already completed, nothing to do")
            return task
        completed = task.mark_as_completed(self.clock())

        saved = self.repository.save_task(completed)
        if saved is None:
            raise NotFoundError("Task", task_id)
        self.bus.publish(
            TaskCompleted(
                actor_id=actor_id,
                workspace_id=self.repository.workspace_id_for_task(task_id),
                task=saved,
            )
        )
        return saved

    def delete_task(self, actor_id: int, task_id: int) -> None:
        task = self._load_task(task_id)
        if not self.policies.can_delete_task(actor_id, task):
            raise ForbiddenError("delete", "task")

        self.repository.delete_task(task_id)
        self.cache.forget(comments_cache_key(task_id), attachments_cache_key(task_id))

    ### COMMENT SERVICES ###

    def add_comment_to_task(self, actor_id: int, task_id: int, body: str) -> TaskComment:
        task = self._load_task(task_id)
        if not self.policies.can_comment_on_task(actor_id, task):
            raise ForbiddenError("comment on", "task")
        content = CommentContent(body)

        comment = self.repository.add_comment(task_id, actor_id, content.value)
        self.cache.forget(comments_cache_key(task_id))
        self.bus.publish(
            TaskCommentAdded(
                actor_id=actor_id,
                workspace_id=self.repository.workspace_id_for_task(task_id),
                task=task,
                comment=comment,
            )
        )
        return comment

    def list_comments(self, actor_id: int, task_id: int) -> List[TaskComment]:
        task = self._load_task(task_id)
        if not self.policies.can_view_task(actor_id, task):
            raise ForbiddenError("view", "task")
        comments = self.cache.remember(
            comments_cache_key(task_id),
            self.settings.COMMENTS_CACHE_TTL,
            lambda: self.repository.get_comments_by_task(task_id),
            _comments_adapter,
        )
        return list(comments)

    @property
    def comment_edit_window(self) -> Optional[timedelta]:
        minutes = self.settings.COMMENT_EDIT_WINDOW_MINUTES
        return timedelta(minutes=minutes) if minutes else None

    def update_comment(self, actor_id: int, comment_id: int, body: str) -> TaskComment:
        comment = self._load_comment(comment_id)
        if not self.policies.can_update_comment(actor_id, comment):
            raise ForbiddenError("update", "comment")

        now = self.clock()
        if not comment.is_editable(now, self.comment_edit_window):
            raise ValidationError(
                f"Comments can only be edited within {self.settings.COMMENT_EDIT_WINDOW_MINUTES} minutes",
                rule="edit_window",
            )
        content = CommentContent(body)

        saved = self.repository.save_comment(comment.with_body(content.value, now))
        if saved is None:
            raise NotFoundError("Comment", comment_id)
        self.cache.forget(comments_cache_key(comment.task_id))
        task = self.repository.find_task_by_id(comment.task_id)
        if task is not None:
            self.bus.publish(
                TaskCommentUpdated(
                    actor_id=actor_id,
                    workspace_id=self.repository.workspace_id_for_task(task.id),
                    task=task,
                    comment=saved,
                )
            )
        return saved

    def delete_comment(self, actor_id: int, comment_id: int) -> None:
        comment = self._load_comment(comment_id)
        if not self.policies.can_delete_comment(actor_id, comment):
            raise ForbiddenError("delete", "comment")

        self.repository.delete_comment(comment_id)
        self.cache.forget(comments_cache_key(comment.task_id))

    ### ATTACHMENT SERVICES ###

    def upload_attachment(self, actor_id: int, task_id: int, upload: AttachmentUpload) -> TaskAttachment:
        task = self._load_task(task_id)
        if not self.policies.can_upload_attachment(actor_id, task):
            raise ForbiddenError("upload attachments to", "task")

        file_name = FileName(upload.file_name)
        if upload.mime_type not in self.settings.ALLOWED_ATTACHMENT_TYPES:
            raise ValidationError(f"Unsupported file type: {upload.mime_type}", rule="mime_type")
        if upload.file_size == 0:
            raise ValidationError("Attachment is empty", rule="required")
        if upload.file_size > self.settings.MAX_ATTACHMENT_SIZE:
            raise ValidationError(
                f"Attachment exceeds the maximum size of {self.settings.MAX_ATTACHMENT_SIZE} bytes",
                rule="max_size",
            )

        stored_name = uuid.uuid4().hex
        if file_name.extension:
            stored_name = f"{stored_name}.{file_name.extension}"
        final_path = self.storage.store(upload.content, f"{ATTACHMENT_NAMESPACE}{task_id}/{stored_name}")
        try:
            file_path = FilePath(final_path)
            attachment = self.repository.add_attachment(
                task_id=task_id,
                user_id=actor_id,
                file_path=file_path.value,
                file_name=file_name.value,
                mime_type=upload.mime_type,
                file_size=upload.file_size,
            )
        except Exception:
            self.storage.delete(final_path)
            raise

        self.cache.forget(attachments_cache_key(task_id))
        self.bus.publish(
            TaskAttachmentUploaded(
                actor_id=actor_id,
                workspace_id=self.repository.workspace_id_for_task(task_id),
                task=task,
                attachment=attachment,
            )
        )
        return attachment

    def list_attachments(self, actor_id: int, task_id: int) -> List[TaskAttachment]:
        task = self._load_task(task_id)
        if not self.policies.can_view_task(actor_id, task):
            raise ForbiddenError("view", "task")
        attachments = self.cache.remember(
            attachments_cache_key(task_id),
            self.settings.ATTACHMENTS_CACHE_TTL,
            lambda: self.repository.get_attachments_by_task(task_id),
            _attachments_adapter,
        )
        return list(attachments)

    def delete_attachment(self, actor_id: int, attachment_id: int) -> None:
        attachment = self._load_attachment(attachment_id)
        if not self.policies.can_delete_attachment(actor_id, attachment):
            raise ForbiddenError("delete", "attachment")

        self.repository.delete_attachment(attachment_id)
        self.cache.forget(attachments_cache_key(attachment.task_id))
        try:
            self.storage.delete(attachment.file_path)
        except Exception as e:
            logger.warning(f"Stored file {attachment.file_path} could not be removed: {str(e)}")
