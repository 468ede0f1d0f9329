"""Authorization checks.

Every check is total: it returns ``False`` to deny and never raises. Callers
turn a denial into ``ForbiddenError``.
"""

import logging
from functools import wraps

from workhub.domain.entities import Project, Task, TaskAttachment, TaskComment, User, Workspace
from workhub.domain.repositories import WorkspaceRepository

logger = logging.getLogger(__name__)


def _deny_on_error(check):
    @wraps(check)
    def wrapper(*args, **kwargs):
        try:
            return bool(check(*args, **kwargs))
        except Exception as e:
            logger.error(f"Authorization check {check.__name__} failed: {str(e)}")
            return False

    return wrapper


class Policies:
    def __init__(self, repository: WorkspaceRepository):
        self.repository = repository

    def _is_workspace_member(self, user_id: int, workspace_id) -> bool:
        if workspace_id is None:
            return False
        return self.repository.is_member(workspace_id, user_id)

    ### WORKSPACE ###

    @_deny_on_error
    def can_view_workspace(self, actor_id: int, workspace: Workspace) -> bool:
        return workspace.owner_id == actor_id or self._is_workspace_member(actor_id, workspace.id)

    @_deny_on_error
    def can_update_workspace(self, actor_id: int, workspace: Workspace) -> bool:
        return workspace.owner_id == actor_id

    @_deny_on_error
    def can_delete_workspace(self, actor_id: int, workspace: Workspace) -> bool:
        return workspace.owner_id == actor_id

    @_deny_on_error
    def can_manage_members(self, actor_id: int, workspace: Workspace) -> bool:
        return workspace.owner_id == actor_id

    ### PROJECT ###

    @_deny_on_error
    def can_create_project(self, actor_id: int, workspace: Workspace) -> bool:
        return self._is_workspace_member(actor_id, workspace.id)

    @_deny_on_error
    def can_view_project(self, actor_id: int, project: Project) -> bool:
        return self._is_workspace_member(actor_id, project.workspace_id)

    @_deny_on_error
    def can_update_project(self, actor_id: int, project: Project) -> bool:
        return self._is_workspace_member(actor_id, project.workspace_id)

    @_deny_on_error
    def can_delete_project(self, actor_id: int, project: Project) -> bool:
        return self._is_workspace_member(actor_id, project.workspace_id)

    ### TASK ###

    def _task_workspace(self, task: Task):
        return self.repository.workspace_id_for_project(task.project_id)

    @_deny_on_error
    def can_create_task(self, actor_id: int, project: Project) -> bool:
        return self._is_workspace_member(actor_id, project.workspace_id)

    @_deny_on_error
    def can_view_task(self, actor_id: int, task: Task) -> bool:
        return self._is_workspace_member(actor_id, self._task_workspace(task))

    @_deny_on_error
    def can_update_task(self, actor_id: int, task: Task) -> bool:
        return self._is_workspace_member(actor_id, self._task_workspace(task))

    @_deny_on_error
    def can_complete_task(self, actor_id: int, task: Task) -> bool:
        return self._is_workspace_member(actor_id, self._task_workspace(task))

    @_deny_on_error
    def can_delete_task(self, actor_id: int, task: Task) -> bool:
        return self._is_workspace_member(actor_id, self._task_workspace(task))

    @_deny_on_error
    def can_comment_on_task(self, actor_id: int, task: Task) -> bool:
        return self._is_workspace_member(actor_id, self._task_workspace(task))

    ### COMMENT / ATTACHMENT ###

    @_deny_on_error
    def can_update_comment(self, actor_id: int, comment: TaskComment) -> bool:
        return comment.user_id == actor_id

    @_deny_on_error
    def can_delete_comment(self, actor_id: int, comment: TaskComment) -> bool:
        return comment.user_id == actor_id

    @_deny_on_error
    def can_upload_attachment(self, actor_id: int, task: Task) -> bool:
        return self._is_workspace_member(actor_id, self._task_workspace(task))

    @_deny_on_error
    def can_view_attachment(self, actor_id: int, attachment: TaskAttachment) -> bool:
        return self._is_workspace_member(
            actor_id, self.repository.workspace_id_for_task(attachment.task_id)
        )

    @_deny_on_error
    def can_delete_attachment(self, actor_id: int, attachment: TaskAttachment) -> bool:
        return attachment.user_id == actor_id

    ### USER ###

    @_deny_on_error
    def can_view_user(self, actor: User, target: User) -> bool:
        return actor.id == target.id or actor.is_admin

    @_deny_on_error
    def can_update_user(self, actor: User, target: User) -> bool:
        return actor.id == target.id or actor.is_admin

    @_deny_on_error
    def can_delete_user(self, actor: User, target: User) -> bool:
        return actor.id == target.id or actor.is_admin
