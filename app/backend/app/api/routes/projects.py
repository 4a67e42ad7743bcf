"""Project lifecycle endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context
from app.db.dependencies import get_db_session
from app.services.tracker_service import ProjectCreateData, TrackerService

router = APIRouter(prefix="/projects", tags=["projects"])


class ProjectCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    team_id: str = Field(min_length=1, max_length=64)
    description: str = Field(default="", max_length=2000)
    budget: Decimal = Field(default=Decimal("0.00"), ge=0)
    start_date: date
    end_date: date


@router.get("")
def list_projects(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": TrackerService(db).list_projects(context=context)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return TrackerService(db).create_project(
        context=context,
        data=ProjectCreateData(
            name=payload.name,
            team_id=payload.team_id,
            description=payload.description,
            budget=payload.budget,
            start_date=payload.start_date,
            end_date=payload.end_date,
        ),
    )


@router.get("/{project_id}")
def get_project(
    project_id: str,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return TrackerService(db).get_project_details(context=context, project_id=project_id)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: str,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    TrackerService(db).delete_project(context=context, project_id=project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
