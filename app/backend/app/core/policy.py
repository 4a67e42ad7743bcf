"""Authorization policy: pure predicates over (caller, resource, extra).

Predicates never touch the store. Services load whatever relationship data a
predicate needs (assignee ids, owning project) and call ``ensure`` before any write.
Every predicate branches on all four roles so that a new role fails type checking
instead of silently inheriting access.
"""

from __future__ import annotations

from collections.abc import Collection
from typing import assert_never

from app.core.auth import AppRole, RequestUserContext
from app.core.errors import UnauthorizedError
from app.core.logging import get_logger
from app.models.entities import FinancialEntryType, Project, Task

logger = get_logger(__name__)

ADMIN_ROLES = frozenset({AppRole.SUPER_ADMIN, AppRole.TEAM_LEADER})


def ensure(allowed: bool, reason: str, *, caller: RequestUserContext | None = None) -> None:
    """Raise ``UnauthorizedError`` with ``reason`` unless ``allowed``."""

    if allowed:
        return
    if caller is not None:
        logger.info("authorization_denied", user_id=caller.user_id, role=caller.role.value, reason=reason)
    raise UnauthorizedError(reason)


def _leads_team(caller: RequestUserContext, team_id: str | None) -> bool:
    return caller.role is AppRole.TEAM_LEADER and caller.team_id is not None and caller.team_id == team_id


# ---------- Read scope ----------
def can_view_project(
    caller: RequestUserContext,
    project: Project,
    *,
    assigned_project_ids: Collection[str] = (),
) -> bool:
    """Project visibility; ``assigned_project_ids`` lists projects with a task assigned to caller."""

    role = caller.role
    if role is AppRole.SUPER_ADMIN:
        return True
    if role is AppRole.TEAM_LEADER:
        return _leads_team(caller, project.team_id)
    if role is AppRole.EMPLOYEE:
        return project.id in assigned_project_ids
    if role is AppRole.GUEST:
        return caller.project_id == project.id
    assert_never(role)


def can_view_task(
    caller: RequestUserContext,
    task: Task,
    *,
    project: Project,
    assignee_ids: Collection[str],
) -> bool:
    role = caller.role
    if role is AppRole.SUPER_ADMIN:
        return True
    if role is AppRole.TEAM_LEADER:
        return _leads_team(caller, project.team_id)
    if role is AppRole.EMPLOYEE:
        return caller.user_id in assignee_ids
    if role is AppRole.GUEST:
        return caller.project_id == task.project_id
    assert_never(role)


def can_view_financials(caller: RequestUserContext, project: Project) -> bool:
    role = caller.role
    if role is AppRole.SUPER_ADMIN:
        return True
    if role is AppRole.TEAM_LEADER:
        return _leads_team(caller, project.team_id)
    if role in (AppRole.EMPLOYEE, AppRole.GUEST):
        return False
    assert_never(role)


# ---------- Administration ----------
def can_manage_projects(caller: RequestUserContext) -> bool:
    """Create or delete projects."""

    return caller.role is AppRole.SUPER_ADMIN


def can_manage_teams(caller: RequestUserContext) -> bool:
    """Create, update or delete teams."""

    return caller.role is AppRole.SUPER_ADMIN


def can_manage_team_members(caller: RequestUserContext, team_id: str) -> bool:
    role = caller.role
    if role is AppRole.SUPER_ADMIN:
        return True
    if role is AppRole.TEAM_LEADER:
        return _leads_team(caller, team_id)
    if role in (AppRole.EMPLOYEE, AppRole.GUEST):
        return False
    assert_never(role)


def can_manage_users(caller: RequestUserContext) -> bool:
    """Create or disable users."""

    return caller.role is AppRole.SUPER_ADMIN


def can_update_user(caller: RequestUserContext, target_user_id: str) -> bool:
    return caller.role is AppRole.SUPER_ADMIN or caller.user_id == target_user_id


def can_list_users(caller: RequestUserContext) -> bool:
    return caller.role in ADMIN_ROLES


def can_manage_guests(caller: RequestUserContext, project: Project) -> bool:
    role = caller.role
    if role is AppRole.SUPER_ADMIN:
        return True
    if role is AppRole.TEAM_LEADER:
        return _leads_team(caller, project.team_id)
    if role in (AppRole.EMPLOYEE, AppRole.GUEST):
        return False
    assert_never(role)


# ---------- Tasks ----------
def can_create_task(caller: RequestUserContext, project: Project) -> bool:
    role = caller.role
    if role is AppRole.SUPER_ADMIN:
        return True
    if role is AppRole.TEAM_LEADER:
        return _leads_team(caller, project.team_id)
    if role in (AppRole.EMPLOYEE, AppRole.GUEST):
        return False
    assert_never(role)


def can_update_task(caller: RequestUserContext, project: Project, *, assignee_ids: Collection[str]) -> bool:
    role = caller.role
    if role is AppRole.SUPER_ADMIN:
        return True
    if role is AppRole.TEAM_LEADER:
        return _leads_team(caller, project.team_id) or caller.user_id in assignee_ids
    if role in (AppRole.EMPLOYEE, AppRole.GUEST):
        return caller.user_id in assignee_ids
    assert_never(role)


def can_bulk_update_tasks(caller: RequestUserContext, projects: Collection[Project]) -> bool:
    """Schedule/dependency batch edits; a team leader only within their own team."""

    role = caller.role
    if role is AppRole.SUPER_ADMIN:
        return True
    if role is AppRole.TEAM_LEADER:
        return all(_leads_team(caller, project.team_id) for project in projects)
    if role in (AppRole.EMPLOYEE, AppRole.GUEST):
        return False
    assert_never(role)


def can_comment(caller: RequestUserContext, project: Project, *, assignee_ids: Collection[str]) -> bool:
    role = caller.role
    if role is AppRole.SUPER_ADMIN:
        return True
    if role is AppRole.TEAM_LEADER:
        return _leads_team(caller, project.team_id) or caller.user_id in assignee_ids
    if role is AppRole.EMPLOYEE:
        return caller.user_id in assignee_ids
    if role is AppRole.GUEST:
        return caller.project_id == project.id
    assert_never(role)


# ---------- Finance ----------
def can_add_financial_entry(
    caller: RequestUserContext,
    entry_type: FinancialEntryType,
    project: Project,
) -> bool:
    role = caller.role
    if role is AppRole.SUPER_ADMIN:
        return True
    if role is AppRole.TEAM_LEADER:
        return entry_type is FinancialEntryType.EXPENSE and _leads_team(caller, project.team_id)
    if role in (AppRole.EMPLOYEE, AppRole.GUEST):
        return False
    assert_never(role)


def can_view_financial_summary(caller: RequestUserContext) -> bool:
    return caller.role in ADMIN_ROLES
