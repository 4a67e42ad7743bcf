"""Repository helpers for the task tracker domain."""

from __future__ import annotations

from collections.abc import Collection, Iterable
from datetime import date
from decimal import Decimal

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.orm import Session

from app.models.entities import (
    Comment,
    FinancialEntry,
    FinancialEntryType,
    Notification,
    Project,
    RoleType,
    Task,
    TaskAssignee,
    TaskDependency,
    Team,
    User,
)


class TrackerRepository:
    """Persistence operations used by tracker, admin and notification services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Users ----------
    def list_users(self) -> list[User]:
        return self.db.scalars(select(User).order_by(User.full_name.asc(), User.id.asc())).all()

    def list_users_by_ids(self, user_ids: Collection[str]) -> list[User]:
        if not user_ids:
            return []
        return self.db.scalars(
            select(User).where(User.id.in_(list(user_ids))).order_by(User.full_name.asc(), User.id.asc())
        ).all()

    def list_users_by_role(self, role: RoleType) -> list[User]:
        return self.db.scalars(select(User).where(User.role == role).order_by(User.id.asc())).all()

    def list_unassigned_employees(self) -> list[User]:
        return self.db.scalars(
            select(User)
            .where(
                and_(
                    User.role == RoleType.EMPLOYEE,
                    User.team_id.is_(None),
                    User.disabled.is_(False),
                )
            )
            .order_by(User.full_name.asc())
        ).all()

    def list_team_members(self, team_id: str) -> list[User]:
        return self.db.scalars(select(User).where(User.team_id == team_id).order_by(User.id.asc())).all()

    def list_project_guests(self, project_id: str) -> list[User]:
        return self.db.scalars(
            select(User)
            .where(and_(User.role == RoleType.GUEST, User.project_id == project_id))
            .order_by(User.id.asc())
        ).all()

    def get_team_leader(self, team_id: str) -> User | None:
        """The team's designated leader, else the first team-leader member."""

        team = self.get_team(team_id)
        if team is not None and team.leader_id is not None:
            leader = self.get_user(team.leader_id)
            if leader is not None and leader.role == RoleType.TEAM_LEADER and leader.team_id == team_id:
                return leader
        return self.db.scalar(
            select(User)
            .where(and_(User.role == RoleType.TEAM_LEADER, User.team_id == team_id))
            .order_by(User.id.asc())
            .limit(1)
        )

    def get_user(self, user_id: str) -> User | None:
        return self.db.get(User, user_id)

    def get_user_by_email(self, email: str) -> User | None:
        return self.db.scalar(select(User).where(User.email == email))

    def add_user(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    def delete_user(self, user: User) -> None:
        """Hard delete, removing the rows that reference the user."""

        comment_ids = self.db.scalars(select(Comment.id).where(Comment.author_id == user.id)).all()
        if comment_ids:
            self.db.execute(update(Comment).where(Comment.parent_id.in_(comment_ids)).values(parent_id=None))
            self.db.execute(delete(Comment).where(Comment.id.in_(comment_ids)))
        self.db.execute(delete(Notification).where(Notification.user_id == user.id))
        self.db.execute(delete(TaskAssignee).where(TaskAssignee.user_id == user.id))
        self.db.delete(user)
        self.db.flush()

    def set_team_for_users(self, user_ids: Collection[str], team_id: str | None) -> None:
        if not user_ids:
            return
        self.db.execute(
            update(User)
            .where(User.id.in_(list(user_ids)))
            .values(team_id=team_id)
            .execution_options(synchronize_session="fetch")
        )
        self.db.flush()

    # ---------- Teams ----------
    def list_teams(self) -> list[Team]:
        return self.db.scalars(select(Team).order_by(Team.name.asc(), Team.id.asc())).all()

    def get_team(self, team_id: str) -> Team | None:
        return self.db.get(Team, team_id)

    def add_team(self, team: Team) -> Team:
        self.db.add(team)
        self.db.flush()
        return team

    def delete_team(self, team: Team) -> None:
        self.db.delete(team)
        self.db.flush()

    def count_team_projects(self, team_id: str) -> int:
        return self.db.scalar(select(func.count()).select_from(Project).where(Project.team_id == team_id)) or 0

    # ---------- Projects ----------
    def list_projects(self, project_ids: Collection[str] | None = None) -> list[Project]:
        statement = select(Project)
        if project_ids is not None:
            if not project_ids:
                return []
            statement = statement.where(Project.id.in_(list(project_ids)))
        return self.db.scalars(statement.order_by(Project.start_date.desc(), Project.id.asc())).all()

    def list_projects_for_team(self, team_id: str) -> list[Project]:
        return self.db.scalars(
            select(Project).where(Project.team_id == team_id).order_by(Project.start_date.desc(), Project.id.asc())
        ).all()

    def list_project_ids_with_assignee(self, user_id: str) -> set[str]:
        return set(
            self.db.scalars(
                select(Task.project_id)
                .join(TaskAssignee, TaskAssignee.task_id == Task.id)
                .where(TaskAssignee.user_id == user_id)
                .distinct()
            ).all()
        )

    def get_project(self, project_id: str) -> Project | None:
        return self.db.get(Project, project_id)

    def add_project(self, project: Project) -> Project:
        self.db.add(project)
        self.db.flush()
        return project

    def delete_project(self, project: Project) -> None:
        task_ids = self.db.scalars(select(Task.id).where(Task.project_id == project.id)).all()
        if task_ids:
            self.db.execute(delete(Notification).where(Notification.task_id.in_(task_ids)))
            self.db.execute(delete(TaskAssignee).where(TaskAssignee.task_id.in_(task_ids)))
            self.db.execute(
                delete(TaskDependency).where(
                    or_(
                        TaskDependency.target_task_id.in_(task_ids),
                        TaskDependency.source_task_id.in_(task_ids),
                    )
                )
            )
            self.db.execute(
                update(Comment).where(Comment.task_id.in_(task_ids)).values(parent_id=None)
            )
            self.db.execute(delete(Comment).where(Comment.task_id.in_(task_ids)))
            self.db.execute(update(Task).where(Task.id.in_(task_ids)).values(parent_id=None))
            self.db.execute(delete(Task).where(Task.id.in_(task_ids)))
        self.db.execute(delete(FinancialEntry).where(FinancialEntry.project_id == project.id))
        guest_ids = [guest.id for guest in self.list_project_guests(project.id)]
        if guest_ids:
            self.db.execute(delete(Notification).where(Notification.user_id.in_(guest_ids)))
            self.db.execute(delete(User).where(User.id.in_(guest_ids)))
        self.db.delete(project)
        self.db.flush()

    # ---------- Tasks ----------
    def list_tasks(self, project_ids: Collection[str]) -> list[Task]:
        if not project_ids:
            return []
        return self.db.scalars(
            select(Task)
            .where(Task.project_id.in_(list(project_ids)))
            .order_by(Task.project_id.asc(), Task.start_date.asc(), Task.id.asc())
        ).all()

    def list_tasks_by_ids(self, task_ids: Collection[str]) -> list[Task]:
        if not task_ids:
            return []
        return self.db.scalars(select(Task).where(Task.id.in_(list(task_ids))).order_by(Task.id.asc())).all()

    def list_tasks_assigned_to(self, user_id: str, project_ids: Collection[str] | None = None) -> list[Task]:
        statement = (
            select(Task)
            .join(TaskAssignee, TaskAssignee.task_id == Task.id)
            .where(TaskAssignee.user_id == user_id)
        )
        if project_ids is not None:
            if not project_ids:
                return []
            statement = statement.where(Task.project_id.in_(list(project_ids)))
        return self.db.scalars(
            statement.order_by(Task.project_id.asc(), Task.start_date.asc(), Task.id.asc())
        ).all()

    def list_open_tasks_ending_before(self, cutoff: date, *, done_column_id: str) -> list[Task]:
        return self.db.scalars(
            select(Task)
            .where(and_(Task.end_date < cutoff, Task.column_id != done_column_id))
            .order_by(Task.id.asc())
        ).all()

    def get_task(self, task_id: str) -> Task | None:
        return self.db.get(Task, task_id)

    def get_task_for_update(self, task_id: str) -> Task | None:
        """Row-locked read so concurrent set-replaces on one task serialize."""

        return self.db.scalar(select(Task).where(Task.id == task_id).with_for_update())

    def list_tasks_for_update(self, task_ids: Collection[str]) -> list[Task]:
        if not task_ids:
            return []
        return self.db.scalars(
            select(Task).where(Task.id.in_(list(task_ids))).order_by(Task.id.asc()).with_for_update()
        ).all()

    def add_task(self, task: Task) -> Task:
        self.db.add(task)
        self.db.flush()
        return task

    # ---------- Assignee links ----------
    def list_assignee_links(self, task_ids: Collection[str]) -> list[TaskAssignee]:
        if not task_ids:
            return []
        return self.db.scalars(
            select(TaskAssignee)
            .where(TaskAssignee.task_id.in_(list(task_ids)))
            .order_by(TaskAssignee.task_id.asc(), TaskAssignee.id.asc())
        ).all()

    def assignee_ids(self, task_id: str) -> list[str]:
        return [link.user_id for link in self.list_assignee_links([task_id])]

    def replace_assignees(self, task_id: str, user_ids: Iterable[str]) -> None:
        """Set-replace: drop every link of the task, then insert the new set."""

        self.db.execute(delete(TaskAssignee).where(TaskAssignee.task_id == task_id))
        for user_id in dict.fromkeys(user_ids):
            self.db.add(TaskAssignee(task_id=task_id, user_id=user_id))
        self.db.flush()

    # ---------- Dependency links ----------
    def list_dependency_links(self, task_ids: Collection[str]) -> list[TaskDependency]:
        if not task_ids:
            return []
        return self.db.scalars(
            select(TaskDependency)
            .where(TaskDependency.target_task_id.in_(list(task_ids)))
            .order_by(TaskDependency.target_task_id.asc(), TaskDependency.id.asc())
        ).all()

    def list_project_dependency_edges(self, project_id: str) -> list[TaskDependency]:
        return self.db.scalars(
            select(TaskDependency)
            .join(Task, Task.id == TaskDependency.target_task_id)
            .where(Task.project_id == project_id)
            .order_by(TaskDependency.id.asc())
        ).all()

    def replace_dependencies(self, task_id: str, source_task_ids: Iterable[str]) -> None:
        self.db.execute(delete(TaskDependency).where(TaskDependency.target_task_id == task_id))
        for source_task_id in dict.fromkeys(source_task_ids):
            self.db.add(TaskDependency(target_task_id=task_id, source_task_id=source_task_id))
        self.db.flush()

    # ---------- Comments ----------
    def list_comments(self, task_ids: Collection[str]) -> list[Comment]:
        if not task_ids:
            return []
        return self.db.scalars(
            select(Comment)
            .where(Comment.task_id.in_(list(task_ids)))
            .order_by(Comment.created_at.asc(), Comment.seq.asc(), Comment.id.asc())
        ).all()

    def get_comment(self, comment_id: str) -> Comment | None:
        return self.db.get(Comment, comment_id)

    def next_comment_seq(self) -> int:
        return (self.db.scalar(select(func.max(Comment.seq))) or 0) + 1

    def add_comment(self, comment: Comment) -> Comment:
        self.db.add(comment)
        self.db.flush()
        return comment

    # ---------- Financial entries ----------
    def list_financial_entries(self, project_ids: Collection[str]) -> list[FinancialEntry]:
        if not project_ids:
            return []
        return self.db.scalars(
            select(FinancialEntry)
            .where(FinancialEntry.project_id.in_(list(project_ids)))
            .order_by(
                FinancialEntry.created_at.desc(),
                FinancialEntry.entry_date.desc(),
                FinancialEntry.id.desc(),
            )
        ).all()

    def add_financial_entry(self, entry: FinancialEntry) -> FinancialEntry:
        self.db.add(entry)
        self.db.flush()
        return entry

    def sum_financial_entries(
        self,
        entry_type: FinancialEntryType,
        *,
        team_id: str | None = None,
    ) -> Decimal:
        statement = select(func.coalesce(func.sum(FinancialEntry.amount), 0)).where(
            FinancialEntry.entry_type == entry_type
        )
        if team_id is not None:
            statement = statement.join(Project, Project.id == FinancialEntry.project_id).where(
                Project.team_id == team_id
            )
        return self.db.scalar(statement)

    # ---------- Notifications ----------
    def list_notifications(self, user_id: str) -> list[Notification]:
        return self.db.scalars(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.asc())
        ).all()

    def has_pending_notification(self, *, user_id: str, task_id: str, text: str) -> bool:
        return (
            self.db.scalar(
                select(Notification.id)
                .where(
                    and_(
                        Notification.user_id == user_id,
                        Notification.task_id == task_id,
                        Notification.text == text,
                        Notification.read.is_(False),
                    )
                )
                .limit(1)
            )
            is not None
        )

    def add_notification(self, notification: Notification) -> Notification:
        self.db.add(notification)
        self.db.flush()
        return notification

    def mark_notifications_read(self, user_id: str, notification_ids: Collection[str]) -> int:
        if not notification_ids:
            return 0
        result = self.db.execute(
            update(Notification)
            .where(
                and_(
                    Notification.user_id == user_id,
                    Notification.id.in_(list(notification_ids)),
                    Notification.read.is_(False),
                )
            )
            .values(read=True)
            .execution_options(synchronize_session="fetch")
        )
        self.db.flush()
        return result.rowcount or 0

    # ---------- Search ----------
    def search_projects(self, project_ids: Collection[str], term: str) -> list[Project]:
        if not project_ids:
            return []
        return self.db.scalars(
            select(Project)
            .where(
                Project.id.in_(list(project_ids)),
                or_(
                    Project.name.icontains(term, autoescape=True),
                    Project.description.icontains(term, autoescape=True),
                ),
            )
            .order_by(Project.name.asc(), Project.id.asc())
        ).all()

    def search_tasks(self, task_ids: Collection[str], term: str) -> list[Task]:
        if not task_ids:
            return []
        return self.db.scalars(
            select(Task)
            .where(
                Task.id.in_(list(task_ids)),
                or_(
                    Task.title.icontains(term, autoescape=True),
                    Task.description.icontains(term, autoescape=True),
                ),
            )
            .order_by(Task.start_date.asc(), Task.id.asc())
        ).all()

    def search_comments(self, task_ids: Collection[str], term: str) -> list[tuple[Comment, Task]]:
        if not task_ids:
            return []
        rows = self.db.execute(
            select(Comment, Task)
            .join(Task, Task.id == Comment.task_id)
            .where(Comment.task_id.in_(list(task_ids)), Comment.text.icontains(term, autoescape=True))
            .order_by(Comment.created_at.desc(), Comment.seq.desc())
        ).all()
        return [(comment, task) for comment, task in rows]
