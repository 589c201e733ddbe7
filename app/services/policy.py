"""
Task authorization policy.

Every decision about who may do what to a task is made from the table
below. Admins may perform every action; other users are granted an action
only through their relation to the task (creator and/or assignee).

    action  | creator | assignee
    --------+---------+---------
    read    |   yes   |   yes
    update  |   yes   |   yes
    assign  |   yes   |   no
    delete  |   yes   |   no
"""

from enum import Enum
from typing import Protocol

from app.core.errors import ForbiddenError
from app.models import UserRole


class TaskAction(str, Enum):
    READ = "read"
    UPDATE = "update"
    ASSIGN = "assign"
    DELETE = "delete"


class TaskRelation(str, Enum):
    CREATOR = "creator"
    ASSIGNEE = "assignee"


PERMISSIONS: dict[TaskAction, frozenset[TaskRelation]] = {
    TaskAction.READ: frozenset({TaskRelation.CREATOR, TaskRelation.ASSIGNEE}),
    TaskAction.UPDATE: frozenset({TaskRelation.CREATOR, TaskRelation.ASSIGNEE}),
    TaskAction.ASSIGN: frozenset({TaskRelation.CREATOR}),
    TaskAction.DELETE: frozenset({TaskRelation.CREATOR}),
}

DENIAL_MESSAGES = {
    TaskAction.READ: "Access denied",
    TaskAction.UPDATE: "You do not have permission to update this task",
    TaskAction.ASSIGN: "You do not have permission to assign this task",
    TaskAction.DELETE: "You do not have permission to delete this task",
}


class Actor(Protocol):
    id: str
    role: UserRole


class TaskRef(Protocol):
    creator_id: str
    assignee_id: str | None


def relations(actor_id: str, task: TaskRef) -> frozenset[TaskRelation]:
    found = set()
    if task.creator_id == actor_id:
        found.add(TaskRelation.CREATOR)
    if task.assignee_id is not None and task.assignee_id == actor_id:
        found.add(TaskRelation.ASSIGNEE)
    return frozenset(found)


def allowed_actions(actor_id: str, actor_role: UserRole, task: TaskRef) -> frozenset[TaskAction]:
    """Return every action the actor may perform on the task."""
    if actor_role == UserRole.ADMIN:
        return frozenset(TaskAction)
    held = relations(actor_id, task)
    return frozenset(action for action, granted in PERMISSIONS.items() if held & granted)


def is_allowed(actor: Actor, action: TaskAction, task: TaskRef) -> bool:
    return action in allowed_actions(actor.id, actor.role, task)


def authorize(actor: Actor, action: TaskAction, task: TaskRef) -> None:
    """Raise ForbiddenError unless the actor may perform `action` on `task`."""
    if not is_allowed(actor, action, task):
        raise ForbiddenError(DENIAL_MESSAGES[action])
