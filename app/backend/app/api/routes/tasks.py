"""Task board, Gantt scheduling and comment endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context
from app.db.dependencies import get_db_session
from app.services.tracker_service import (
    TaskCreateData,
    TaskScheduleInput,
    TaskUpdateData,
    TrackerService,
)

router = APIRouter(tags=["tasks"])


class TaskCreatePayload(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=10000)
    start_date: date
    end_date: date
    assignee_ids: list[str] = Field(default_factory=list)
    parent_id: str | None = None


class TaskUpdatePayload(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=10000)
    column_id: str = Field(min_length=1, max_length=64)
    start_date: date
    end_date: date
    assignee_ids: list[str] = Field(default_factory=list)
    baseline_start_date: date | None = None
    baseline_end_date: date | None = None
    planned_cost: Decimal | None = Field(default=None, ge=0)
    actual_cost: Decimal | None = Field(default=None, ge=0)
    is_milestone: bool | None = None
    expected_revision: int | None = Field(default=None, ge=0)


class TaskStatusPayload(BaseModel):
    column_id: str = Field(min_length=1, max_length=64)


class TaskSchedulePayload(BaseModel):
    id: str
    start_date: date
    end_date: date
    dependencies: list[str] = Field(default_factory=list)


class TaskBulkUpdatePayload(BaseModel):
    tasks: list[TaskSchedulePayload] = Field(min_length=1)


class CommentCreatePayload(BaseModel):
    text: str = Field(min_length=1, max_length=10000)
    parent_id: str | None = None


@router.post("/projects/{project_id}/tasks", status_code=status.HTTP_201_CREATED)
def create_task(
    project_id: str,
    payload: TaskCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return TrackerService(db).add_task(
        context=context,
        data=TaskCreateData(
            project_id=project_id,
            title=payload.title,
            description=payload.description,
            start_date=payload.start_date,
            end_date=payload.end_date,
            assignee_ids=payload.assignee_ids,
            parent_id=payload.parent_id,
        ),
    )


@router.get("/tasks/{task_id}")
def get_task(
    task_id: str,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return TrackerService(db).get_task(context=context, task_id=task_id)


@router.put("/tasks/{task_id}")
def update_task(
    task_id: str,
    payload: TaskUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return TrackerService(db).update_task(
        context=context,
        task_id=task_id,
        data=TaskUpdateData(**payload.model_dump(), fields_set=frozenset(payload.model_fields_set)),
    )


@router.patch("/tasks/{task_id}/status")
def update_task_status(
    task_id: str,
    payload: TaskStatusPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return TrackerService(db).update_task_status(context=context, task_id=task_id, column_id=payload.column_id)


@router.patch("/tasks")
def bulk_update_tasks(
    payload: TaskBulkUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    """Reschedule several tasks at once; any invalid item rejects the whole batch."""

    items = TrackerService(db).bulk_update_tasks(
        context=context,
        items=[
            TaskScheduleInput(
                task_id=item.id,
                start_date=item.start_date,
                end_date=item.end_date,
                dependencies=item.dependencies,
            )
            for item in payload.tasks
        ],
    )
    return {"items": items}


@router.post("/tasks/{task_id}/comments", status_code=status.HTTP_201_CREATED)
def add_comment(
    task_id: str,
    payload: CommentCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return TrackerService(db).add_comment(
        context=context,
        task_id=task_id,
        text=payload.text,
        parent_id=payload.parent_id,
    )
