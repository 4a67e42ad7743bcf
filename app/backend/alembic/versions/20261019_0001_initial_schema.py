"""initial schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


role_type = postgresql.ENUM(
    "Super Admin", "Team Leader", "Employee", "Guest", name="role_type", create_type=False
)
financial_entry_type = postgresql.ENUM("Income", "Expense", name="financial_entry_type", create_type=False)


def upgrade() -> None:
    role_type.create(op.get_bind(), checkfirst=True)
    financial_entry_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "teams",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("leader_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("team_id", sa.String(length=64), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("budget", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("budget >= 0", name="ck_projects_budget_non_negative"),
    )
    op.create_index("ix_projects_team_id", "projects", ["team_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("credential_hash", sa.String(length=255), nullable=False),
        sa.Column("role", role_type, nullable=False),
        sa.Column("team_id", sa.String(length=64), sa.ForeignKey("teams.id"), nullable=True),
        sa.Column("project_id", sa.String(length=64), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("avatar_url", sa.String(length=1024), nullable=True),
        sa.Column("disabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("notify_on_assignment", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("notify_on_comment", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("notify_on_status_change", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("notify_on_due_date_change", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("(role <> 'Guest' OR project_id IS NOT NULL)", name="ck_users_guest_has_project"),
    )
    op.create_index("ix_users_team_id", "users", ["team_id"])
    op.create_index("ix_users_project_id", "users", ["project_id"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("project_id", sa.String(length=64), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("parent_id", sa.String(length=64), sa.ForeignKey("tasks.id"), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("column_id", sa.String(length=64), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("baseline_start_date", sa.Date(), nullable=True),
        sa.Column("baseline_end_date", sa.Date(), nullable=True),
        sa.Column("planned_cost", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("actual_cost", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("is_milestone", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("planned_cost >= 0", name="ck_tasks_planned_cost_non_negative"),
        sa.CheckConstraint("actual_cost >= 0", name="ck_tasks_actual_cost_non_negative"),
    )
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
    op.create_index("ix_tasks_parent_id", "tasks", ["parent_id"])

    op.create_table(
        "task_assignees",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("task_id", sa.String(length=64), sa.ForeignKey("tasks.id"), nullable=False),
        sa.Column("user_id", sa.String(length=64), sa.ForeignKey("users.id"), nullable=False),
        sa.UniqueConstraint("task_id", "user_id", name="uq_task_assignees_task_user"),
    )
    op.create_index("ix_task_assignees_user_id", "task_assignees", ["user_id"])

    op.create_table(
        "task_dependencies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("target_task_id", sa.String(length=64), sa.ForeignKey("tasks.id"), nullable=False),
        sa.Column("source_task_id", sa.String(length=64), sa.ForeignKey("tasks.id"), nullable=False),
        sa.CheckConstraint("source_task_id <> target_task_id", name="ck_task_dependencies_no_self_edge"),
        sa.UniqueConstraint("target_task_id", "source_task_id", name="uq_task_dependencies_edge"),
    )
    op.create_index("ix_task_dependencies_target", "task_dependencies", ["target_task_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("task_id", sa.String(length=64), sa.ForeignKey("tasks.id"), nullable=False),
        sa.Column("author_id", sa.String(length=64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("parent_id", sa.String(length=64), sa.ForeignKey("comments.id"), nullable=True),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_comments_task_id", "comments", ["task_id"])

    op.create_table(
        "financial_entries",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("project_id", sa.String(length=64), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("entry_type", financial_entry_type, nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("source", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_financial_entries_amount_non_negative"),
    )
    op.create_index("ix_financial_entries_project_date", "financial_entries", ["project_id", "entry_date"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("task_id", sa.String(length=64), sa.ForeignKey("tasks.id"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"])
    op.create_index("ix_notifications_task_id", "notifications", ["task_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_task_id", table_name="notifications")
    op.drop_index("ix_notifications_user_read", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_financial_entries_project_date", table_name="financial_entries")
    op.drop_table("financial_entries")
    op.drop_index("ix_comments_task_id", table_name="comments")
    op.drop_table("comments")
    op.drop_index("ix_task_dependencies_target", table_name="task_dependencies")
    op.drop_table("task_dependencies")
    op.drop_index("ix_task_assignees_user_id", table_name="task_assignees")
    op.drop_table("task_assignees")
    op.drop_index("ix_tasks_parent_id", table_name="tasks")
    op.drop_index("ix_tasks_project_id", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_users_project_id", table_name="users")
    op.drop_index("ix_users_team_id", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_projects_team_id", table_name="projects")
    op.drop_table("projects")
    op.drop_table("teams")

    financial_entry_type.drop(op.get_bind(), checkfirst=True)
    role_type.drop(op.get_bind(), checkfirst=True)
