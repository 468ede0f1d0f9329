import enum
from typing import Dict, FrozenSet


class WorkspaceStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    suspended = "suspended"


class MemberRole(str, enum.Enum):
    owner = "owner"
    admin = "admin"
    member = "member"


class ProjectStatus(str, enum.Enum):
    active = "active"
    completed = "completed"
    archived = "archived"


class TaskPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class TaskStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    blocked = "blocked"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.completed, TaskStatus.cancelled)

    def can_transition_to(self, target: "TaskStatus") -> bool:
        if target is self:
            return True
        return target in _TRANSITIONS[self]


_OPEN = frozenset(
    {
        TaskStatus.pending,
        TaskStatus.in_progress,
        TaskStatus.blocked,
        TaskStatus.cancelled,
        TaskStatus.completed,
    }
)

_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.pending: _OPEN - {TaskStatus.pending},
    TaskStatus.in_progress: _OPEN - {TaskStatus.in_progress},
    TaskStatus.blocked: _OPEN - {TaskStatus.blocked},
    TaskStatus.completed: frozenset(),
    TaskStatus.cancelled: frozenset(),
}
