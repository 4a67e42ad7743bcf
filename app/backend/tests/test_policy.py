from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from app.core.auth import AppRole, RequestUserContext
from app.core.errors import UnauthorizedError
from app.core.policy import (
    can_add_financial_entry,
    can_bulk_update_tasks,
    can_comment,
    can_create_task,
    can_manage_guests,
    can_manage_teams,
    can_update_task,
    can_update_user,
    can_view_financials,
    can_view_project,
    can_view_task,
    ensure,
)
from app.models.entities import FinancialEntryType, Project, Task

SUPER_ADMIN = RequestUserContext(user_id="admin", role=AppRole.SUPER_ADMIN)
LEADER_A = RequestUserContext(user_id="leader-a", role=AppRole.TEAM_LEADER, team_id="team-a")
EMPLOYEE_A = RequestUserContext(user_id="emp-a1", role=AppRole.EMPLOYEE, team_id="team-a")
GUEST_A1 = RequestUserContext(user_id="guest", role=AppRole.GUEST, project_id="proj-a1")


def _project(project_id: str, team_id: str) -> Project:
    return Project(
        id=project_id,
        team_id=team_id,
        name=project_id,
        description="",
        budget=Decimal("0.00"),
        start_date=date(2026, 1, 1),
        end_date=date(2026, 12, 31),
    )


def _task(task_id: str, project_id: str) -> Task:
    return Task(
        id=task_id,
        project_id=project_id,
        title=task_id,
        column_id="col-not-started",
        start_date=date(2026, 3, 1),
        end_date=date(2026, 3, 2),
    )


PROJECT_A1 = _project("proj-a1", "team-a")
PROJECT_B = _project("proj-b", "team-b")


def test_project_visibility_per_role() -> None:
    assert can_view_project(SUPER_ADMIN, PROJECT_B) is True
    assert can_view_project(LEADER_A, PROJECT_A1) is True
    assert can_view_project(LEADER_A, PROJECT_B) is False
    assert can_view_project(EMPLOYEE_A, PROJECT_A1) is False
    assert can_view_project(EMPLOYEE_A, PROJECT_A1, assigned_project_ids={"proj-a1"}) is True
    assert can_view_project(GUEST_A1, PROJECT_A1) is True
    assert can_view_project(GUEST_A1, PROJECT_B) is False


def test_employee_sees_only_assigned_tasks() -> None:
    task = _task("task-1", "proj-a1")

    assert can_view_task(EMPLOYEE_A, task, project=PROJECT_A1, assignee_ids={"emp-a1"}) is True
    assert can_view_task(EMPLOYEE_A, task, project=PROJECT_A1, assignee_ids={"emp-a2"}) is False
    assert can_view_task(GUEST_A1, task, project=PROJECT_A1, assignee_ids=()) is True


def test_financials_hidden_from_employees_and_guests() -> None:
    assert can_view_financials(SUPER_ADMIN, PROJECT_B) is True
    assert can_view_financials(LEADER_A, PROJECT_A1) is True
    assert can_view_financials(LEADER_A, PROJECT_B) is False
    assert can_view_financials(EMPLOYEE_A, PROJECT_A1) is False
    assert can_view_financials(GUEST_A1, PROJECT_A1) is False


def test_only_super_admin_manages_teams() -> None:
    assert can_manage_teams(SUPER_ADMIN) is True
    for caller in (LEADER_A, EMPLOYEE_A, GUEST_A1):
        assert can_manage_teams(caller) is False


def test_task_creation_limited_to_owning_leader() -> None:
    assert can_create_task(LEADER_A, PROJECT_A1) is True
    assert can_create_task(LEADER_A, PROJECT_B) is False
    assert can_create_task(EMPLOYEE_A, PROJECT_A1) is False


def test_task_update_requires_assignment_for_non_admins() -> None:
    assert can_update_task(EMPLOYEE_A, PROJECT_A1, assignee_ids={"emp-a1"}) is True
    assert can_update_task(EMPLOYEE_A, PROJECT_A1, assignee_ids=set()) is False
    assert can_update_task(LEADER_A, PROJECT_A1, assignee_ids=set()) is True
    assert can_update_task(LEADER_A, PROJECT_B, assignee_ids=set()) is False
    assert can_update_task(GUEST_A1, PROJECT_A1, assignee_ids=set()) is False


def test_bulk_update_requires_leading_every_project() -> None:
    assert can_bulk_update_tasks(LEADER_A, [PROJECT_A1]) is True
    assert can_bulk_update_tasks(LEADER_A, [PROJECT_A1, PROJECT_B]) is False
    assert can_bulk_update_tasks(EMPLOYEE_A, [PROJECT_A1]) is False


def test_guest_can_comment_only_in_scoped_project() -> None:
    assert can_comment(GUEST_A1, PROJECT_A1, assignee_ids=()) is True
    assert can_comment(GUEST_A1, PROJECT_B, assignee_ids=()) is False
    assert can_comment(EMPLOYEE_A, PROJECT_A1, assignee_ids=()) is False


def test_income_is_super_admin_only() -> None:
    assert can_add_financial_entry(SUPER_ADMIN, FinancialEntryType.INCOME, PROJECT_A1) is True
    assert can_add_financial_entry(LEADER_A, FinancialEntryType.INCOME, PROJECT_A1) is False
    assert can_add_financial_entry(LEADER_A, FinancialEntryType.EXPENSE, PROJECT_A1) is True
    assert can_add_financial_entry(LEADER_A, FinancialEntryType.EXPENSE, PROJECT_B) is False
    assert can_add_financial_entry(EMPLOYEE_A, FinancialEntryType.EXPENSE, PROJECT_A1) is False


def test_guest_management_is_scoped_to_leader_team() -> None:
    assert can_manage_guests(SUPER_ADMIN, PROJECT_B) is True
    assert can_manage_guests(LEADER_A, PROJECT_A1) is True
    assert can_manage_guests(LEADER_A, PROJECT_B) is False
    assert can_manage_guests(EMPLOYEE_A, PROJECT_A1) is False


def test_users_may_update_only_themselves() -> None:
    assert can_update_user(EMPLOYEE_A, "emp-a1") is True
    assert can_update_user(EMPLOYEE_A, "emp-a2") is False
    assert can_update_user(SUPER_ADMIN, "emp-a2") is True


def test_ensure_raises_unauthorized_with_reason() -> None:
    ensure(True, "never raised")

    with pytest.raises(UnauthorizedError) as exc_info:
        ensure(False, "Only a super admin can create teams.", caller=EMPLOYEE_A)

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == "Only a super admin can create teams."
