"""Notification fanout: derive recipient sets from mutation deltas and persist them."""

from __future__ import annotations

from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext
from app.core.logging import get_logger
from app.models.entities import (
    COLUMN_DONE,
    COLUMN_STUCK,
    Notification,
    RoleType,
    Task,
    User,
)
from app.repositories.tracker_repository import TrackerRepository

logger = get_logger(__name__)

ALERT_COLUMNS = frozenset({COLUMN_DONE, COLUMN_STUCK})


class NotificationCategory(str, Enum):
    ASSIGNMENT = "on_assignment"
    COMMENT = "on_comment"
    STATUS_CHANGE = "on_status_change"
    DUE_DATE_CHANGE = "on_due_date_change"


def format_due_date(value: date) -> str:
    return value.strftime("%d.%m.%Y")


@dataclass(frozen=True, slots=True)
class TaskSnapshot:
    """Fields of a task that notification rules compare before and after a write."""

    task_id: str
    project_id: str
    title: str
    column_id: str
    start_date: date
    end_date: date
    assignee_ids: frozenset[str]

    @classmethod
    def capture(cls, task: Task, assignee_ids: Iterable[str]) -> TaskSnapshot:
        return cls(
            task_id=task.id,
            project_id=task.project_id,
            title=task.title,
            column_id=task.column_id,
            start_date=task.start_date,
            end_date=task.end_date,
            assignee_ids=frozenset(assignee_ids),
        )


@dataclass(frozen=True, slots=True)
class NotificationCandidate:
    user_id: str
    task_id: str
    text: str
    category: NotificationCategory


# ---------- Pure rules ----------
def status_change_candidates(
    before: TaskSnapshot,
    after: TaskSnapshot,
    *,
    leader_id: str | None,
    super_admin_ids: Sequence[str],
    assignee_names: Sequence[str],
) -> list[NotificationCandidate]:
    if after.column_id == before.column_id or after.column_id not in ALERT_COLUMNS:
        return []
    if after.column_id == COLUMN_DONE:
        who = ", ".join(assignee_names) or "The team"
        text = f'{who} completed the task: "{after.title}"'
    else:
        text = f'Task is stuck: "{after.title}". Please take a look.'
    recipients = [leader_id] if leader_id else []
    recipients.extend(super_admin_ids)
    return [
        NotificationCandidate(user_id, after.task_id, text, NotificationCategory.STATUS_CHANGE)
        for user_id in dict.fromkeys(recipients)
    ]


def due_date_candidates(before: TaskSnapshot, after: TaskSnapshot) -> list[NotificationCandidate]:
    if after.end_date == before.end_date:
        return []
    text = f'The due date of task "{after.title}" changed to {format_due_date(after.end_date)}'
    return [
        NotificationCandidate(user_id, after.task_id, text, NotificationCategory.DUE_DATE_CHANGE)
        for user_id in sorted(after.assignee_ids)
    ]


def schedule_change_candidates(before: TaskSnapshot, after: TaskSnapshot) -> list[NotificationCandidate]:
    """Gantt batch edits move both ends of a task, so either date counts."""

    if after.start_date == before.start_date and after.end_date == before.end_date:
        return []
    text = (
        f'The schedule of task "{after.title}" changed to '
        f"{format_due_date(after.start_date)} - {format_due_date(after.end_date)}"
    )
    return [
        NotificationCandidate(user_id, after.task_id, text, NotificationCategory.DUE_DATE_CHANGE)
        for user_id in sorted(after.assignee_ids)
    ]


def assignment_candidates(before: TaskSnapshot | None, after: TaskSnapshot) -> list[NotificationCandidate]:
    previous = before.assignee_ids if before is not None else frozenset()
    text = f'A new task was assigned to you: "{after.title}"'
    return [
        NotificationCandidate(user_id, after.task_id, text, NotificationCategory.ASSIGNMENT)
        for user_id in sorted(after.assignee_ids - previous)
    ]


def comment_candidates(
    task: TaskSnapshot,
    *,
    author_id: str,
    author_name: str,
    leader_id: str | None,
    super_admin_ids: Collection[str],
    guest_ids: Collection[str],
) -> list[NotificationCandidate]:
    recipients = set(task.assignee_ids) | set(super_admin_ids) | set(guest_ids)
    if leader_id:
        recipients.add(leader_id)
    recipients.discard(author_id)
    text = f'{author_name} wrote a new comment on task: "{task.title}"'
    return [
        NotificationCandidate(user_id, task.task_id, text, NotificationCategory.COMMENT)
        for user_id in sorted(recipients)
    ]


def overdue_text(title: str) -> str:
    return f'Heads up, task "{title}" is past its due date.'


def wants_notification(user: User, category: NotificationCategory) -> bool:
    """Guests cannot edit preferences, so they always receive everything."""

    if user.role == RoleType.GUEST:
        return True
    if category is NotificationCategory.ASSIGNMENT:
        return user.notify_on_assignment
    if category is NotificationCategory.COMMENT:
        return user.notify_on_comment
    if category is NotificationCategory.STATUS_CHANGE:
        return user.notify_on_status_change
    if category is NotificationCategory.DUE_DATE_CHANGE:
        return user.notify_on_due_date_change
    raise ValueError(f"Unknown notification category: {category}")


class NotificationService:
    """Fanout entry points called after a mutation commits, plus the overdue sweep."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TrackerRepository(db)

    # ---------- Delivery ----------
    def deliver(self, candidates: Iterable[NotificationCandidate]) -> list[Notification]:
        """Persist candidates allowed by preferences, skipping identical unread ones."""

        created: list[Notification] = []
        seen: set[tuple[str, str, str]] = set()
        now = datetime.utcnow()
        for candidate in candidates:
            key = (candidate.user_id, candidate.task_id, candidate.text)
            if key in seen:
                continue
            seen.add(key)

            user = self.repo.get_user(candidate.user_id)
            if user is None or user.disabled or not wants_notification(user, candidate.category):
                continue
            if self.repo.has_pending_notification(
                user_id=candidate.user_id,
                task_id=candidate.task_id,
                text=candidate.text,
            ):
                continue
            created.append(
                self.repo.add_notification(
                    Notification(
                        user_id=candidate.user_id,
                        task_id=candidate.task_id,
                        text=candidate.text,
                        read=False,
                        created_at=now,
                    )
                )
            )

        self.db.commit()
        return created

    def _leader_id(self, project_id: str) -> str | None:
        project = self.repo.get_project(project_id)
        if project is None:
            return None
        leader = self.repo.get_team_leader(project.team_id)
        return leader.id if leader is not None else None

    def _super_admin_ids(self) -> list[str]:
        return [user.id for user in self.repo.list_users_by_role(RoleType.SUPER_ADMIN)]

    # ---------- Fanout triggers ----------
    def task_updated(self, before: TaskSnapshot, after: TaskSnapshot) -> list[Notification]:
        candidates: list[NotificationCandidate] = []
        if after.column_id != before.column_id and after.column_id in ALERT_COLUMNS:
            assignees = self.repo.list_users_by_ids(after.assignee_ids)
            candidates.extend(
                status_change_candidates(
                    before,
                    after,
                    leader_id=self._leader_id(after.project_id),
                    super_admin_ids=self._super_admin_ids(),
                    assignee_names=[user.full_name for user in assignees],
                )
            )
        candidates.extend(due_date_candidates(before, after))
        candidates.extend(assignment_candidates(before, after))
        return self.deliver(candidates)

    def tasks_rescheduled(self, changes: Sequence[tuple[TaskSnapshot, TaskSnapshot]]) -> list[Notification]:
        candidates: list[NotificationCandidate] = []
        for before, after in changes:
            candidates.extend(schedule_change_candidates(before, after))
        return self.deliver(candidates)

    def task_created(self, after: TaskSnapshot) -> list[Notification]:
        return self.deliver(assignment_candidates(None, after))

    def comment_added(self, task: TaskSnapshot, *, author: User) -> list[Notification]:
        return self.deliver(
            comment_candidates(
                task,
                author_id=author.id,
                author_name=author.full_name,
                leader_id=self._leader_id(task.project_id),
                super_admin_ids=self._super_admin_ids(),
                guest_ids=[guest.id for guest in self.repo.list_project_guests(task.project_id)],
            )
        )

    # ---------- Periodic ----------
    def run_overdue_sweep(self, today: date | None = None) -> list[Notification]:
        """Notify the owning team leader of every open task past its end date.

        Safe to run repeatedly: an identical unread notification suppresses a new one.
        """

        cutoff = today or date.today()
        candidates: list[NotificationCandidate] = []
        leaders: dict[str, str | None] = {}
        for task in self.repo.list_open_tasks_ending_before(cutoff, done_column_id=COLUMN_DONE):
            if task.project_id not in leaders:
                leaders[task.project_id] = self._leader_id(task.project_id)
            leader_id = leaders[task.project_id]
            if leader_id is None:
                continue
            candidates.append(
                NotificationCandidate(
                    leader_id,
                    task.id,
                    overdue_text(task.title),
                    NotificationCategory.STATUS_CHANGE,
                )
            )
        created = self.deliver(candidates)
        logger.info("overdue_sweep_completed", cutoff=cutoff.isoformat(), created=len(created))
        return created

    # ---------- Inbox ----------
    def list_notifications(self, *, context: RequestUserContext) -> list[Notification]:
        return self.repo.list_notifications(context.user_id)

    def mark_read(self, *, context: RequestUserContext, notification_ids: Collection[str]) -> int:
        updated = self.repo.mark_notifications_read(context.user_id, notification_ids)
        self.db.commit()
        return updated
