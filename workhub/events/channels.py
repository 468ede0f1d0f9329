"""Real-time channel naming and subscription checks.

Channel names are ``task.{id}`` and ``project.{id}``. Access is re-derived
from the name alone: resolve the owning workspace, then require membership.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from workhub.domain.repositories import WorkspaceRepository

logger = logging.getLogger(__name__)

_CHANNEL = re.compile(r"^(task|project)\.([1-9][0-9]*)$")


def task_channel(task_id: int) -> str:
    return f"task.{task_id}"


def project_channel(project_id: int) -> str:
    return f"project.{project_id}"


def parse_channel(channel_name: str) -> Optional[Tuple[str, int]]:
    match = _CHANNEL.match(channel_name or "")
    if not match:
        return None
    return match.group(1), int(match.group(2))


class Broadcaster(ABC):
    @abstractmethod
    def broadcast(self, channel: str, payload: dict) -> None:
        ...


class InMemoryBroadcaster(Broadcaster):
    """Keeps every broadcast; useful for tests and local development."""

    def __init__(self):
        self.messages: List[Tuple[str, dict]] = []

    def broadcast(self, channel, payload):
        self.messages.append((channel, payload))


class LoggingBroadcaster(Broadcaster):
    def broadcast(self, channel, payload):
        logger.info(f"broadcast channel={channel} event={payload.get('event_type')}")


class ChannelAuthorizer:
    def __init__(self, repository: WorkspaceRepository):
        self.repository = repository

    def workspace_for(self, channel_name: str) -> Optional[int]:
        parsed = parse_channel(channel_name)
        if parsed is None:
            return None
        kind, resource_id = parsed
        if kind == "task":
            return self.repository.workspace_id_for_task(resource_id)
        return self.repository.workspace_id_for_project(resource_id)

    def authorize(self, user_id: int, channel_name: str) -> bool:
        try:
            workspace_id = self.workspace_for(channel_name)
            if workspace_id is None:
                return False
            return self.repository.is_member(workspace_id, user_id)
        except Exception as e:
            logger.error(f"Channel authorization for {channel_name} failed: {str(e)}")
            return False
