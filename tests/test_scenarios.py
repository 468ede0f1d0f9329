"""End-to-end walkthroughs through the service layer."""

from datetime import timedelta

import pytest

from workhub.core.errors import ForbiddenError, ValidationError
from workhub.domain.enums import ProjectStatus, TaskStatus
from workhub.domain.events import TaskCompleted, TaskCreated


def test_workspace_to_completed_task(service, user_service, bus, delivery, clock):
    owner = user_service.register_user("Alice Owner", "alice@example.com")
    member = user_service.register_user("Bob Member", "bob@example.com")

    workspace = service.create_workspace(owner.id, "My Team")
    assert workspace.slug == "my-team"
    service.add_member_to_workspace(owner.id, workspace.id, member.id)

    project = service.create_project(owner.id, workspace.id, "Launch")
    assert project.status == ProjectStatus.active

    with pytest.raises(ValidationError) as exc:
        service.create_task(owner.id, project.id, "Ship it", due_date=clock() - timedelta(days=1))
    assert exc.value.rule == "due_date"
    assert bus.get_history() == []

    task = service.create_task(owner.id, project.id, "Ship it", due_date=clock() + timedelta(days=1))
    assert task.is_overdue(clock()) is False

    completed = service.complete_task(owner.id, task.id)
    assert completed.status == TaskStatus.completed

    clock.advance(days=3)
    assert completed.is_overdue(clock()) is False
    assert service.get_task(owner.id, task.id).is_overdue(clock()) is False

    again = service.complete_task(owner.id, task.id)
    assert again.status == TaskStatus.completed

    events = [type(event) for event in bus.get_history()]
    assert events == [TaskCreated, TaskCompleted]
    assert delivery.recipients == {member.id}


def test_non_member_cannot_comment(service, user_service, bus, clock):
    owner = user_service.register_user("Alice Owner", "alice@example.com")
    outsider = user_service.register_user("Bob Outsider", "bob@example.com")
    workspace = service.create_workspace(owner.id, "My Team")
    project = service.create_project(owner.id, workspace.id, "Launch")
    task = service.create_task(owner.id, project.id, "Ship it", due_date=clock() + timedelta(days=1))
    bus.clear_history()

    with pytest.raises(ForbiddenError):
        service.add_comment_to_task(outsider.id, task.id, "Let me in")

    assert service.list_comments(owner.id, task.id) == []
    assert bus.get_history() == []
