from .user import User
from .workspace import Workspace
from .workspace_member import WorkspaceMember
from .project import Project
from .task import Task
from .task_comment import TaskComment
from .task_attachment import TaskAttachment
from .notification import Notification
