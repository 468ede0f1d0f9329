from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from workhub.domain.enums import ProjectStatus, TaskPriority, TaskStatus, WorkspaceStatus

# -----------------------------
#  Workspace commands
# -----------------------------


class WorkspaceUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[WorkspaceStatus] = None


# -----------------------------
#  Project commands
# -----------------------------


class ProjectUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None


# -----------------------------
#  Task commands
# -----------------------------


class TaskUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    assigned_to: Optional[int] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None


# -----------------------------
#  Attachments
# -----------------------------


class AttachmentUpload(BaseModel):
    """File metadata plus bytes, as handed over by the transport layer."""

    file_name: str
    mime_type: str
    content: bytes

    @property
    def file_size(self) -> int:
        return len(self.content)
