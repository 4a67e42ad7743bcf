"""ORM entities for the Taskflow schema."""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


def new_id() -> str:
    return str(uuid.uuid4())


COLUMN_NOT_STARTED = "col-not-started"
COLUMN_STARTED = "col-started"
COLUMN_IN_PROGRESS = "col-in-progress"
COLUMN_STUCK = "col-stuck"
COLUMN_DONE = "col-done"


class RoleType(str, enum.Enum):
    SUPER_ADMIN = "Super Admin"
    TEAM_LEADER = "Team Leader"
    EMPLOYEE = "Employee"
    GUEST = "Guest"


class FinancialEntryType(str, enum.Enum):
    INCOME = "Income"
    EXPENSE = "Expense"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "(role <> 'Guest' OR project_id IS NOT NULL)",
            name="ck_users_guest_has_project",
        ),
        Index("ix_users_team_id", "team_id"),
        Index("ix_users_project_id", "project_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    credential_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[RoleType] = mapped_column(
        SQLEnum(
            RoleType,
            name="role_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    team_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("teams.id"), nullable=True)
    project_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("projects.id"), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notify_on_assignment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_on_comment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_on_status_change: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_on_due_date_change: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # No FK: users.team_id already points here and the cycle would block plain deletes.
    leader_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        CheckConstraint("budget >= 0", name="ck_projects_budget_non_negative"),
        Index("ix_projects_team_id", "team_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    team_id: Mapped[str] = mapped_column(String(64), ForeignKey("teams.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    budget: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint("planned_cost >= 0", name="ck_tasks_planned_cost_non_negative"),
        CheckConstraint("actual_cost >= 0", name="ck_tasks_actual_cost_non_negative"),
        Index("ix_tasks_project_id", "project_id"),
        Index("ix_tasks_parent_id", "parent_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(String(64), ForeignKey("projects.id"), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("tasks.id"), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    column_id: Mapped[str] = mapped_column(String(64), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    baseline_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    baseline_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    planned_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    actual_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    is_milestone: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class TaskAssignee(Base):
    __tablename__ = "task_assignees"
    __table_args__ = (
        Index("ix_task_assignees_user_id", "user_id"),
        UniqueConstraint("task_id", "user_id", name="uq_task_assignees_task_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(String(64), ForeignKey("tasks.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)


class TaskDependency(Base):
    """Directed edge: ``target_task_id`` cannot start before ``source_task_id``."""

    __tablename__ = "task_dependencies"
    __table_args__ = (
        CheckConstraint("source_task_id <> target_task_id", name="ck_task_dependencies_no_self_edge"),
        Index("ix_task_dependencies_target", "target_task_id"),
        UniqueConstraint("target_task_id", "source_task_id", name="uq_task_dependencies_edge"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    target_task_id: Mapped[str] = mapped_column(String(64), ForeignKey("tasks.id"), nullable=False)
    source_task_id: Mapped[str] = mapped_column(String(64), ForeignKey("tasks.id"), nullable=False)


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (Index("ix_comments_task_id", "task_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    # Monotonic insertion order used to break timestamp ties.
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    task_id: Mapped[str] = mapped_column(String(64), ForeignKey("tasks.id"), nullable=False)
    author_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("comments.id"), nullable=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class FinancialEntry(Base):
    __tablename__ = "financial_entries"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_financial_entries_amount_non_negative"),
        Index("ix_financial_entries_project_date", "project_id", "entry_date"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(String(64), ForeignKey("projects.id"), nullable=False)
    entry_type: Mapped[FinancialEntryType] = mapped_column(
        SQLEnum(
            FinancialEntryType,
            name="financial_entry_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
        Index("ix_notifications_task_id", "task_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    task_id: Mapped[str] = mapped_column(String(64), ForeignKey("tasks.id"), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
