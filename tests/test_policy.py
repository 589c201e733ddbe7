"""Tests for the task authorization decision table."""

from types import SimpleNamespace

import pytest

from app.core.errors import ForbiddenError
from app.models import UserRole
from app.services.policy import TaskAction, allowed_actions, authorize, is_allowed

CREATOR = "u-creator"
ASSIGNEE = "u-assignee"
STRANGER = "u-stranger"


def _task(assignee_id: str | None = ASSIGNEE):
    return SimpleNamespace(creator_id=CREATOR, assignee_id=assignee_id)


def _actor(user_id: str, role: UserRole = UserRole.USER):
    return SimpleNamespace(id=user_id, role=role)


@pytest.mark.unit
class TestDecisionTable:
    @pytest.mark.parametrize(
        ("actor_id", "expected"),
        [
            (CREATOR, {TaskAction.READ, TaskAction.UPDATE, TaskAction.ASSIGN, TaskAction.DELETE}),
            (ASSIGNEE, {TaskAction.READ, TaskAction.UPDATE}),
            (STRANGER, set()),
        ],
    )
    def test_user_role(self, actor_id, expected):
        assert allowed_actions(actor_id, UserRole.USER, _task()) == expected

    @pytest.mark.parametrize("actor_id", [CREATOR, ASSIGNEE, STRANGER])
    def test_admin_may_do_everything(self, actor_id):
        assert allowed_actions(actor_id, UserRole.ADMIN, _task()) == set(TaskAction)

    def test_creator_who_is_also_assignee(self):
        task = _task(assignee_id=CREATOR)
        assert allowed_actions(CREATOR, UserRole.USER, task) == set(TaskAction)

    def test_unassigned_task_grants_nothing_to_others(self):
        assert allowed_actions(STRANGER, UserRole.USER, _task(assignee_id=None)) == set()


@pytest.mark.unit
class TestAuthorize:
    def test_assignee_cannot_assign(self):
        with pytest.raises(ForbiddenError, match="assign"):
            authorize(_actor(ASSIGNEE), TaskAction.ASSIGN, _task())

    def test_assignee_cannot_delete(self):
        with pytest.raises(ForbiddenError, match="delete"):
            authorize(_actor(ASSIGNEE), TaskAction.DELETE, _task())

    def test_stranger_cannot_update(self):
        with pytest.raises(ForbiddenError, match="update"):
            authorize(_actor(STRANGER), TaskAction.UPDATE, _task())

    def test_allowed_action_returns_none(self):
        assert authorize(_actor(CREATOR), TaskAction.DELETE, _task()) is None

    def test_is_allowed_for_admin(self):
        assert is_allowed(_actor(STRANGER, UserRole.ADMIN), TaskAction.DELETE, _task())
