"""View assembly: reshape normalized rows into nested, role-scoped view models.

Everything here is a pure read. The same rows always produce the same payload:
assignee and dependency ids are sorted, comments follow (timestamp, insertion seq, id).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import assert_never

from app.core.auth import AppRole, RequestUserContext
from app.core.errors import NotFoundError
from app.core.policy import can_view_financials
from app.models.entities import (
    Comment,
    FinancialEntry,
    Notification,
    Project,
    Task,
    TaskAssignee,
    TaskDependency,
    Team,
    User,
)
from app.repositories.tracker_repository import TrackerRepository

Q2 = Decimal("0.01")


def _money(value: Decimal | int | float) -> str:
    return str(Decimal(value).quantize(Q2))


def _iso(value: object) -> str | None:
    return value.isoformat() if value is not None else None


# ---------- Flat serializers ----------
def serialize_user(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "name": user.full_name,
        "email": user.email,
        "role": user.role.value,
        "team_id": user.team_id,
        "project_id": user.project_id,
        "avatar_url": user.avatar_url,
        "disabled": user.disabled,
        "notification_preferences": {
            "on_assignment": user.notify_on_assignment,
            "on_comment": user.notify_on_comment,
            "on_status_change": user.notify_on_status_change,
            "on_due_date_change": user.notify_on_due_date_change,
        },
    }


def serialize_author(user: User) -> dict[str, object]:
    """Read-time snapshot of a comment author."""

    return {
        "id": user.id,
        "name": user.full_name,
        "avatar_url": user.avatar_url,
        "role": user.role.value,
        "email": user.email,
    }


def serialize_team(team: Team) -> dict[str, object]:
    return {"id": team.id, "name": team.name, "leader_id": team.leader_id}


def serialize_project(project: Project) -> dict[str, object]:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "team_id": project.team_id,
        "budget": _money(project.budget),
        "start_date": project.start_date.isoformat(),
        "end_date": project.end_date.isoformat(),
    }


def serialize_financial_entry(entry: FinancialEntry) -> dict[str, object]:
    return {
        "id": entry.id,
        "type": entry.entry_type.value,
        "date": entry.entry_date.isoformat(),
        "source": entry.source,
        "description": entry.description,
        "amount": _money(entry.amount),
        "project_id": entry.project_id,
    }


def serialize_notification(notification: Notification) -> dict[str, object]:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "task_id": notification.task_id,
        "text": notification.text,
        "timestamp": notification.created_at.isoformat(),
        "read": notification.read,
    }


# ---------- Task assembly ----------
@dataclass(slots=True)
class TaskRowsets:
    """Join-table rows for a set of tasks, indexed by task id."""

    assignees: dict[str, list[str]] = field(default_factory=dict)
    dependencies: dict[str, list[str]] = field(default_factory=dict)
    comments: dict[str, list[Comment]] = field(default_factory=dict)
    authors: dict[str, User] = field(default_factory=dict)

    @classmethod
    def from_rows(
        cls,
        *,
        assignees: Iterable[TaskAssignee],
        dependencies: Iterable[TaskDependency],
        comments: Iterable[Comment],
        authors: Mapping[str, User],
    ) -> TaskRowsets:
        by_task_assignees: dict[str, set[str]] = defaultdict(set)
        for link in assignees:
            by_task_assignees[link.task_id].add(link.user_id)

        by_task_dependencies: dict[str, set[str]] = defaultdict(set)
        for edge in dependencies:
            by_task_dependencies[edge.target_task_id].add(edge.source_task_id)

        by_task_comments: dict[str, list[Comment]] = defaultdict(list)
        for comment in comments:
            by_task_comments[comment.task_id].append(comment)

        return cls(
            assignees={task_id: sorted(ids) for task_id, ids in by_task_assignees.items()},
            dependencies={task_id: sorted(ids) for task_id, ids in by_task_dependencies.items()},
            comments={
                task_id: sorted(rows, key=lambda row: (row.created_at, row.seq, row.id))
                for task_id, rows in by_task_comments.items()
            },
            authors=dict(authors),
        )

    def referenced_user_ids(self) -> set[str]:
        referenced = {user_id for ids in self.assignees.values() for user_id in ids}
        referenced.update(comment.author_id for rows in self.comments.values() for comment in rows)
        return referenced


def serialize_comment(comment: Comment, author: User | None) -> dict[str, object]:
    return {
        "id": comment.id,
        "text": comment.text,
        "timestamp": comment.created_at.isoformat(),
        "parent_id": comment.parent_id,
        "user": serialize_author(author) if author is not None else {"id": comment.author_id},
    }


def assemble_task(task: Task, rowsets: TaskRowsets) -> dict[str, object]:
    """Nest assignees, dependencies and comments into one task view model."""

    return {
        "id": task.id,
        "project_id": task.project_id,
        "parent_id": task.parent_id,
        "title": task.title,
        "description": task.description,
        "column_id": task.column_id,
        "start_date": task.start_date.isoformat(),
        "end_date": task.end_date.isoformat(),
        "baseline_start_date": _iso(task.baseline_start_date),
        "baseline_end_date": _iso(task.baseline_end_date),
        "planned_cost": _money(task.planned_cost),
        "actual_cost": _money(task.actual_cost),
        "is_milestone": task.is_milestone,
        "revision": task.revision,
        "assignee_ids": list(rowsets.assignees.get(task.id, [])),
        "dependencies": list(rowsets.dependencies.get(task.id, [])),
        "comments": [
            serialize_comment(comment, rowsets.authors.get(comment.author_id))
            for comment in rowsets.comments.get(task.id, [])
        ],
    }


@dataclass(slots=True)
class VisibleScope:
    projects: list[Project]
    tasks: list[Task]

    @property
    def project_ids(self) -> list[str]:
        return [project.id for project in self.projects]


class ViewAssembler:
    """Loads rowsets through the repository and assembles view models."""

    def __init__(self, repo: TrackerRepository) -> None:
        self.repo = repo

    def load_rowsets(self, task_ids: Sequence[str]) -> TaskRowsets:
        comments = self.repo.list_comments(task_ids)
        author_ids = {comment.author_id for comment in comments}
        return TaskRowsets.from_rows(
            assignees=self.repo.list_assignee_links(task_ids),
            dependencies=self.repo.list_dependency_links(task_ids),
            comments=comments,
            authors={user.id: user for user in self.repo.list_users_by_ids(author_ids)},
        )

    def assemble_tasks(self, tasks: Sequence[Task]) -> list[dict[str, object]]:
        rowsets = self.load_rowsets([task.id for task in tasks])
        return [assemble_task(task, rowsets) for task in tasks]

    def task_view(self, task_id: str) -> dict[str, object]:
        task = self.repo.get_task(task_id)
        if task is None:
            raise NotFoundError("Task not found.")
        return self.assemble_tasks([task])[0]

    # ---------- Role scope ----------
    def visible_scope(self, context: RequestUserContext) -> VisibleScope:
        role = context.role
        if role is AppRole.SUPER_ADMIN:
            projects = self.repo.list_projects()
            return VisibleScope(projects, self.repo.list_tasks([p.id for p in projects]))
        if role is AppRole.TEAM_LEADER:
            projects = self.repo.list_projects_for_team(context.team_id) if context.team_id else []
            return VisibleScope(projects, self.repo.list_tasks([p.id for p in projects]))
        if role is AppRole.EMPLOYEE:
            tasks = self.repo.list_tasks_assigned_to(context.user_id)
            projects = self.repo.list_projects({task.project_id for task in tasks})
            return VisibleScope(projects, tasks)
        if role is AppRole.GUEST:
            projects = self.repo.list_projects([context.project_id]) if context.project_id else []
            return VisibleScope(projects, self.repo.list_tasks([p.id for p in projects]))
        assert_never(role)

    def visible_teams(self, context: RequestUserContext, scope: VisibleScope) -> list[Team]:
        teams = self.repo.list_teams()
        if context.role in (AppRole.SUPER_ADMIN, AppRole.TEAM_LEADER):
            return teams
        owning_team_ids = {project.team_id for project in scope.projects}
        return [team for team in teams if team.id in owning_team_ids]

    def visible_users(
        self,
        context: RequestUserContext,
        rowsets: TaskRowsets,
        teams: Sequence[Team] = (),
    ) -> list[User]:
        if context.role in (AppRole.SUPER_ADMIN, AppRole.TEAM_LEADER):
            return self.repo.list_users()
        referenced = rowsets.referenced_user_ids()
        referenced.update(team.leader_id for team in teams if team.leader_id)
        referenced.add(context.user_id)
        return self.repo.list_users_by_ids(referenced)

    def bootstrap(self, context: RequestUserContext) -> dict[str, list[dict[str, object]]]:
        """Role-scoped snapshot; every id referenced by a task resolves in the payload."""

        scope = self.visible_scope(context)
        rowsets = self.load_rowsets([task.id for task in scope.tasks])
        visible_task_ids = {task.id for task in scope.tasks}
        rowsets.dependencies = {
            task_id: [source for source in sources if source in visible_task_ids]
            for task_id, sources in rowsets.dependencies.items()
        }

        financial_project_ids = [
            project.id for project in scope.projects if can_view_financials(context, project)
        ]
        teams = self.visible_teams(context, scope)
        return {
            "users": [serialize_user(user) for user in self.visible_users(context, rowsets, teams)],
            "teams": [serialize_team(team) for team in teams],
            "projects": [serialize_project(project) for project in scope.projects],
            "tasks": [assemble_task(task, rowsets) for task in scope.tasks],
            "financials": [
                serialize_financial_entry(entry)
                for entry in self.repo.list_financial_entries(financial_project_ids)
            ],
        }
