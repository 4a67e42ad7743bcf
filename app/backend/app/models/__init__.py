"""ORM model package."""

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

__all__ = [
    "Comment",
    "FinancialEntry",
    "FinancialEntryType",
    "Notification",
    "Project",
    "RoleType",
    "Task",
    "TaskAssignee",
    "TaskDependency",
    "Team",
    "User",
]
