import uuid
from typing import Literal

from pydantic import BaseModel, Field


class SendWelcomeEmail(BaseModel):
    """Greets a newly registered user over the email channel."""

    job_type: Literal["send_welcome_email"] = "send_welcome_email"
    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: int
    name: str
    project_name: str = "Workhub"

    def dedup_key(self) -> str:
        return f"{self.job_id}:{self.user_id}"

    @property
    def title(self) -> str:
        return f"Welcome to {self.project_name}"

    @property
    def message(self) -> str:
        return f"Hi {self.name}, your {self.project_name} account is ready."
