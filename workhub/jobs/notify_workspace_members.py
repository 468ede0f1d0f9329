"""Fan-out job: notify every workspace member except the actor.

Membership is read when the job runs, never taken from the event, so a member
removed between publish and execution is not notified.
"""

import uuid
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from workhub.notifications.enums import NotificationChannel, NotificationType


class NotifyWorkspaceMembers(BaseModel):
    job_type: Literal["notify_workspace_members"] = "notify_workspace_members"
    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workspace_id: int
    notification_type: str
    title: str
    message: str
    data: dict = Field(default_factory=dict)
    action_url: Optional[str] = None
    exclude_user_id: Optional[int] = None
    channels: List[NotificationChannel] = Field(
        default_factory=lambda: [NotificationChannel.database]
    )

    def dedup_key(self, user_id: int) -> str:
        return f"{self.job_id}:{user_id}"

    @property
    def severity(self) -> NotificationType:
        if self.notification_type == "task_completed":
            return NotificationType.success
        return NotificationType.info
