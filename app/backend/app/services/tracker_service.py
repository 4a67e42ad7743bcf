"""Application service for task, comment, project and finance mutations.

Each mutation follows the same sequence: validate, authorize, write inside one
unit of work, re-assemble the affected view models, then fan out notifications on a
best-effort basis.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from app.core.auth import AppRole, RequestUserContext
from app.core.config import get_settings
from app.core.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from app.core.logging import get_logger
from app.core.policy import (
    can_add_financial_entry,
    can_bulk_update_tasks,
    can_comment,
    can_create_task,
    can_manage_projects,
    can_update_task,
    can_view_financial_summary,
    can_view_financials,
    can_view_project,
    can_view_task,
    ensure,
)
from app.db.transaction import unit_of_work
from app.models.entities import (
    COLUMN_NOT_STARTED,
    Comment,
    FinancialEntry,
    FinancialEntryType,
    Project,
    RoleType,
    Task,
)
from app.repositories.tracker_repository import TrackerRepository
from app.services.notification_service import NotificationService, TaskSnapshot
from app.services.views import (
    ViewAssembler,
    serialize_financial_entry,
    serialize_project,
)

logger = get_logger(__name__)

ZERO = Decimal("0.00")


@dataclass(slots=True)
class TaskCreateData:
    project_id: str
    title: str
    start_date: date
    end_date: date
    description: str = ""
    assignee_ids: list[str] = field(default_factory=list)
    parent_id: str | None = None


@dataclass(slots=True)
class TaskUpdateData:
    """Full task overwrite of the core fields.

    Baselines are written only when listed in ``fields_set``, so an explicit ``None`` clears
    them. ``None`` in the cost and milestone fields keeps the stored value.
    """

    title: str
    description: str
    column_id: str
    start_date: date
    end_date: date
    assignee_ids: list[str]
    baseline_start_date: date | None = None
    baseline_end_date: date | None = None
    planned_cost: Decimal | None = None
    actual_cost: Decimal | None = None
    is_milestone: bool | None = None
    expected_revision: int | None = None
    fields_set: frozenset[str] = field(default_factory=frozenset)


@dataclass(slots=True)
class TaskScheduleInput:
    task_id: str
    start_date: date
    end_date: date
    dependencies: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ProjectCreateData:
    name: str
    team_id: str
    start_date: date
    end_date: date
    description: str = ""
    budget: Decimal = ZERO


@dataclass(slots=True)
class FinancialEntryCreateData:
    entry_type: FinancialEntryType
    project_id: str
    entry_date: date
    source: str
    amount: Decimal
    description: str = ""


def find_dependency_cycle(edges: Iterable[tuple[str, str]]) -> list[str] | None:
    """Return one cycle (as a task id path) in ``(target, source)`` edges, if any."""

    successors: dict[str, list[str]] = defaultdict(list)
    for target, source in edges:
        successors[source].append(target)

    state: dict[str, int] = {}
    for root in sorted(successors):
        if state.get(root):
            continue
        path: list[str] = [root]
        stack: list[Iterable[str]] = [iter(sorted(successors[root]))]
        state[root] = 1
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                state[path.pop()] = 2
                stack.pop()
                continue
            if state.get(nxt) == 1:
                return path[path.index(nxt):] + [nxt]
            if not state.get(nxt):
                state[nxt] = 1
                path.append(nxt)
                stack.append(iter(sorted(successors.get(nxt, []))))
    return None


def _ensure_date_range(start: date, end: date, label: str = "Task") -> None:
    if end < start:
        raise ValidationError(f"{label} end date must be on or after its start date.")


def _required_text(value: str, field_name: str) -> str:
    stripped = value.strip() if value else ""
    if not stripped:
        raise ValidationError(f"{field_name} is required.")
    return stripped


class TrackerService:
    """Role-scoped reads and mutations for tasks, projects and finance."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TrackerRepository(db)
        self.views = ViewAssembler(self.repo)
        self.notifications = NotificationService(db)
        self.settings = get_settings()

    # ---------- Helpers ----------
    def _notify(self, event: str, fanout: Callable[[], object]) -> None:
        """Run a fanout; failures are logged and never fail the parent mutation."""

        try:
            fanout()
        except Exception:
            self.db.rollback()
            logger.exception("notification_fanout_failed", notification_event=event)

    def _project_or_404(self, project_id: str) -> Project:
        project = self.repo.get_project(project_id)
        if project is None:
            raise NotFoundError("Project not found.")
        return project

    def _task_or_404(self, task_id: str, *, for_update: bool = False) -> Task:
        task = self.repo.get_task_for_update(task_id) if for_update else self.repo.get_task(task_id)
        if task is None:
            raise NotFoundError("Task not found.")
        return task

    def _ensure_users_exist(self, user_ids: Sequence[str]) -> list[str]:
        unique_ids = list(dict.fromkeys(user_ids))
        found = {user.id: user for user in self.repo.list_users_by_ids(unique_ids)}
        missing = [user_id for user_id in unique_ids if user_id not in found]
        if missing:
            raise ValidationError(f"Unknown assignee ids: {', '.join(sorted(missing))}.")
        guests = [user_id for user_id in unique_ids if found[user_id].role == RoleType.GUEST]
        if guests:
            raise ValidationError("Guests cannot be assigned to tasks.")
        return unique_ids

    def _ensure_parent(self, parent_id: str | None, *, project_id: str, task_id: str | None = None) -> None:
        if parent_id is None:
            return
        if parent_id == task_id:
            raise ValidationError("A task cannot be its own parent.")
        parent = self.repo.get_task(parent_id)
        if parent is None or parent.project_id != project_id:
            raise ValidationError("Parent task must exist in the same project.")

    # ---------- Reads ----------
    def bootstrap(self, *, context: RequestUserContext) -> dict[str, list[dict[str, object]]]:
        if self.settings.overdue_sweep_on_bootstrap:
            self._notify("overdue_sweep", self.notifications.run_overdue_sweep)
        return self.views.bootstrap(context)

    def get_task(self, *, context: RequestUserContext, task_id: str) -> dict[str, object]:
        task = self._task_or_404(task_id)
        project = self._project_or_404(task.project_id)
        ensure(
            can_view_task(context, task, project=project, assignee_ids=self.repo.assignee_ids(task.id)),
            "Not authorized to view this task.",
            caller=context,
        )
        return self.views.task_view(task.id)

    def list_projects(self, *, context: RequestUserContext) -> list[dict[str, object]]:
        return [serialize_project(project) for project in self.views.visible_scope(context).projects]

    def get_project_details(self, *, context: RequestUserContext, project_id: str) -> dict[str, object]:
        project = self._project_or_404(project_id)
        assigned = (
            self.repo.list_project_ids_with_assignee(context.user_id) if context.role is AppRole.EMPLOYEE else ()
        )
        ensure(
            can_view_project(context, project, assigned_project_ids=assigned),
            "Not authorized to view this project.",
            caller=context,
        )
        if context.role is AppRole.EMPLOYEE:
            tasks = self.repo.list_tasks_assigned_to(context.user_id, [project.id])
        else:
            tasks = self.repo.list_tasks([project.id])
        payload = serialize_project(project)
        payload["tasks"] = self.views.assemble_tasks(tasks)
        return payload

    # ---------- Task mutations ----------
    def add_task(self, *, context: RequestUserContext, data: TaskCreateData) -> dict[str, object]:
        title = _required_text(data.title, "Title")
        _ensure_date_range(data.start_date, data.end_date)
        project = self._project_or_404(data.project_id)
        ensure(
            can_create_task(context, project),
            "Only a super admin or the project's team leader can create tasks.",
            caller=context,
        )
        assignee_ids = self._ensure_users_exist(data.assignee_ids)
        self._ensure_parent(data.parent_id, project_id=project.id)

        with unit_of_work(self.db, action="task_created"):
            task = self.repo.add_task(
                Task(
                    project_id=project.id,
                    parent_id=data.parent_id,
                    title=title,
                    description=data.description or "",
                    column_id=COLUMN_NOT_STARTED,
                    start_date=data.start_date,
                    end_date=data.end_date,
                    planned_cost=ZERO,
                    actual_cost=ZERO,
                    is_milestone=False,
                    revision=1,
                    created_at=datetime.utcnow(),
                )
            )
            self.repo.replace_assignees(task.id, assignee_ids)

        view = self.views.task_view(task.id)
        after = TaskSnapshot.capture(task, assignee_ids)
        self._notify("task_created", lambda: self.notifications.task_created(after))
        return view

    def update_task(self, *, context: RequestUserContext, task_id: str, data: TaskUpdateData) -> dict[str, object]:
        title = _required_text(data.title, "Title")
        column_id = _required_text(data.column_id, "Column")
        _ensure_date_range(data.start_date, data.end_date)

        task = self._task_or_404(task_id, for_update=True)
        baseline_start = (
            data.baseline_start_date if "baseline_start_date" in data.fields_set else task.baseline_start_date
        )
        baseline_end = data.baseline_end_date if "baseline_end_date" in data.fields_set else task.baseline_end_date
        if baseline_start and baseline_end:
            _ensure_date_range(baseline_start, baseline_end, "Baseline")
        project = self._project_or_404(task.project_id)
        current_assignees = self.repo.assignee_ids(task.id)
        ensure(
            can_update_task(context, project, assignee_ids=current_assignees),
            "Only a super admin, the project's team leader or an assignee can update this task.",
            caller=context,
        )
        if data.expected_revision is not None and data.expected_revision != task.revision:
            raise ConflictError("Task was modified by someone else; reload and retry.")
        assignee_ids = self._ensure_users_exist(data.assignee_ids)
        before = TaskSnapshot.capture(task, current_assignees)

        with unit_of_work(self.db, action="task_updated"):
            task.title = title
            task.description = data.description or ""
            task.column_id = column_id
            task.start_date = data.start_date
            task.end_date = data.end_date
            task.baseline_start_date = baseline_start
            task.baseline_end_date = baseline_end
            if data.planned_cost is not None:
                task.planned_cost = data.planned_cost
            if data.actual_cost is not None:
                task.actual_cost = data.actual_cost
            if data.is_milestone is not None:
                task.is_milestone = data.is_milestone
            task.revision += 1
            self.db.flush()
            self.repo.replace_assignees(task.id, assignee_ids)

        view = self.views.task_view(task.id)
        after = TaskSnapshot.capture(task, assignee_ids)
        self._notify("task_updated", lambda: self.notifications.task_updated(before, after))
        return view

    def update_task_status(self, *, context: RequestUserContext, task_id: str, column_id: str) -> dict[str, object]:
        column_id = _required_text(column_id, "Status")
        task = self._task_or_404(task_id, for_update=True)
        project = self._project_or_404(task.project_id)
        assignee_ids = self.repo.assignee_ids(task.id)
        ensure(
            can_update_task(context, project, assignee_ids=assignee_ids),
            "Only a super admin, the project's team leader or an assignee can update this task.",
            caller=context,
        )
        before = TaskSnapshot.capture(task, assignee_ids)

        with unit_of_work(self.db, action="task_status_updated"):
            task.column_id = column_id
            task.revision += 1

        view = self.views.task_view(task.id)
        after = TaskSnapshot.capture(task, assignee_ids)
        self._notify("task_status_updated", lambda: self.notifications.task_updated(before, after))
        return view

    def bulk_update_tasks(
        self,
        *,
        context: RequestUserContext,
        items: Sequence[TaskScheduleInput],
    ) -> list[dict[str, object]]:
        """Apply Gantt schedule and dependency edits as one all-or-nothing batch."""

        if not items:
            raise ValidationError("At least one task is required.")
        task_ids = [item.task_id for item in items]
        if len(set(task_ids)) != len(task_ids):
            raise ValidationError("Each task may appear only once in a batch.")
        for item in items:
            _ensure_date_range(item.start_date, item.end_date)
            if item.task_id in item.dependencies:
                raise ValidationError("A task cannot depend on itself.")

        tasks = {task.id: task for task in self.repo.list_tasks_for_update(task_ids)}
        missing = [task_id for task_id in task_ids if task_id not in tasks]
        if missing:
            raise NotFoundError(f"Tasks not found: {', '.join(missing)}.")
        projects = {project.id: project for project in self.repo.list_projects({t.project_id for t in tasks.values()})}
        ensure(
            can_bulk_update_tasks(context, list(projects.values())),
            "Only a super admin or the owning team leader can reschedule tasks.",
            caller=context,
        )

        dependency_ids = {source for item in items for source in item.dependencies}
        sources = {task.id: task for task in self.repo.list_tasks_by_ids(dependency_ids)}
        for item in items:
            for source_id in item.dependencies:
                source = sources.get(source_id)
                if source is None or source.project_id != tasks[item.task_id].project_id:
                    raise ValidationError(f"Dependency {source_id} must be an existing task in the same project.")

        links = self.views.load_rowsets(task_ids)
        before = {
            task_id: TaskSnapshot.capture(task, links.assignees.get(task_id, [])) for task_id, task in tasks.items()
        }

        with unit_of_work(self.db, action="tasks_bulk_updated"):
            for item in items:
                task = tasks[item.task_id]
                task.start_date = item.start_date
                task.end_date = item.end_date
                task.revision += 1
                self.db.flush()
                self.repo.replace_dependencies(task.id, item.dependencies)
            for project_id in projects:
                cycle = find_dependency_cycle(
                    (edge.target_task_id, edge.source_task_id)
                    for edge in self.repo.list_project_dependency_edges(project_id)
                )
                if cycle:
                    raise ValidationError(f"Dependencies would form a cycle: {' -> '.join(cycle)}.")

        views = self.views.assemble_tasks([tasks[task_id] for task_id in task_ids])
        changes = [
            (before[task_id], TaskSnapshot.capture(tasks[task_id], before[task_id].assignee_ids))
            for task_id in task_ids
        ]
        self._notify("tasks_bulk_updated", lambda: self.notifications.tasks_rescheduled(changes))
        return views

    def add_comment(
        self,
        *,
        context: RequestUserContext,
        task_id: str,
        text: str,
        parent_id: str | None = None,
    ) -> dict[str, object]:
        content = _required_text(text, "Content")
        task = self._task_or_404(task_id)
        project = self._project_or_404(task.project_id)
        assignee_ids = self.repo.assignee_ids(task.id)
        ensure(
            can_comment(context, project, assignee_ids=assignee_ids),
            "Not authorized to comment on this task.",
            caller=context,
        )
        if parent_id is not None:
            parent = self.repo.get_comment(parent_id)
            if parent is None or parent.task_id != task.id:
                raise ValidationError("Reply target must be a comment on the same task.")
        author = self.repo.get_user(context.user_id)
        if author is None:
            raise NotFoundError("Comment author not found.")

        with unit_of_work(self.db, action="comment_added"):
            self.repo.add_comment(
                Comment(
                    task_id=task.id,
                    author_id=author.id,
                    parent_id=parent_id,
                    text=content,
                    seq=self.repo.next_comment_seq(),
                    created_at=datetime.utcnow(),
                )
            )

        view = self.views.task_view(task.id)
        snapshot = TaskSnapshot.capture(task, assignee_ids)
        self._notify("comment_added", lambda: self.notifications.comment_added(snapshot, author=author))
        return view

    # ---------- Projects ----------
    def create_project(self, *, context: RequestUserContext, data: ProjectCreateData) -> dict[str, object]:
        ensure(can_manage_projects(context), "Only a super admin can create projects.", caller=context)
        name = _required_text(data.name, "Project name")
        _ensure_date_range(data.start_date, data.end_date, "Project")
        if data.budget < 0:
            raise ValidationError("Budget must not be negative.")
        if self.repo.get_team(data.team_id) is None:
            raise NotFoundError("Team not found.")

        with unit_of_work(self.db, action="project_created"):
            project = self.repo.add_project(
                Project(
                    team_id=data.team_id,
                    name=name,
                    description=data.description.strip(),
                    budget=data.budget,
                    start_date=data.start_date,
                    end_date=data.end_date,
                    created_at=datetime.utcnow(),
                )
            )
        return serialize_project(project)

    def delete_project(self, *, context: RequestUserContext, project_id: str) -> None:
        ensure(can_manage_projects(context), "Only a super admin can delete projects.", caller=context)
        project = self._project_or_404(project_id)
        with unit_of_work(self.db, action="project_deleted"):
            self.repo.delete_project(project)

    # ---------- Finance ----------
    def add_financial_transaction(
        self,
        *,
        context: RequestUserContext,
        data: FinancialEntryCreateData,
    ) -> dict[str, object]:
        source = _required_text(data.source, "Source")
        if data.amount <= 0:
            raise ValidationError("Amount must be greater than zero.")
        project = self._project_or_404(data.project_id)
        if data.entry_type is FinancialEntryType.INCOME:
            reason = "Not authorized to add income entries."
        else:
            reason = "Not authorized to add expense entries for this project."
        ensure(can_add_financial_entry(context, data.entry_type, project), reason, caller=context)

        with unit_of_work(self.db, action="financial_entry_added"):
            entry = self.repo.add_financial_entry(
                FinancialEntry(
                    project_id=project.id,
                    entry_type=data.entry_type,
                    entry_date=data.entry_date,
                    source=source,
                    description=data.description.strip(),
                    amount=data.amount,
                    created_at=datetime.utcnow(),
                )
            )
        return serialize_financial_entry(entry)

    def list_financials(
        self,
        *,
        context: RequestUserContext,
        project_id: str | None = None,
    ) -> list[dict[str, object]]:
        """Visible entries, most recently recorded first."""

        if project_id is not None:
            project = self._project_or_404(project_id)
            ensure(
                can_view_financials(context, project),
                "Not authorized to view this project's finances.",
                caller=context,
            )
            projects = [project]
        else:
            projects = [p for p in self.views.visible_scope(context).projects if can_view_financials(context, p)]
        entries = self.repo.list_financial_entries([project.id for project in projects])
        return [serialize_financial_entry(entry) for entry in entries]

    def financial_summary(self, *, context: RequestUserContext, team_id: str | None = None) -> dict[str, str]:
        ensure(
            can_view_financial_summary(context),
            "Not authorized to view financial summaries.",
            caller=context,
        )
        if context.is_super_admin:
            income = self.repo.sum_financial_entries(FinancialEntryType.INCOME, team_id=team_id)
            expense = self.repo.sum_financial_entries(FinancialEntryType.EXPENSE, team_id=team_id)
            return {
                "total_income": str(Decimal(income).quantize(Decimal("0.01"))),
                "total_expense": str(Decimal(expense).quantize(Decimal("0.01"))),
            }
        if team_id is not None and team_id != context.team_id:
            raise UnauthorizedError("Team leaders can only view their own team's expenses.")
        if context.team_id is None:
            return {"total_team_expenses": "0.00"}
        expense = self.repo.sum_financial_entries(FinancialEntryType.EXPENSE, team_id=context.team_id)
        return {"total_team_expenses": str(Decimal(expense).quantize(Decimal("0.01")))}
