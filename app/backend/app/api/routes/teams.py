"""Team and team membership endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context
from app.db.dependencies import get_db_session
from app.services.admin_service import AdminService, TeamData

router = APIRouter(prefix="/teams", tags=["teams"])


class TeamPayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    leader_id: str = Field(min_length=1, max_length=64)
    member_ids: list[str] = Field(default_factory=list)


class TeamMembersPayload(BaseModel):
    user_ids: list[str] = Field(min_length=1)


def _team_data(payload: TeamPayload) -> TeamData:
    return TeamData(name=payload.name, leader_id=payload.leader_id, member_ids=payload.member_ids)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_team(
    payload: TeamPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return AdminService(db).create_team(context=context, data=_team_data(payload))


@router.put("/{team_id}")
def update_team(
    team_id: str,
    payload: TeamPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    """Replace name, leader and membership; returns the users whose team changed."""

    return AdminService(db).update_team(context=context, team_id=team_id, data=_team_data(payload))


@router.delete("/{team_id}")
def delete_team(
    team_id: str,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return AdminService(db).delete_team(context=context, team_id=team_id)


@router.post("/{team_id}/members")
def add_team_members(
    team_id: str,
    payload: TeamMembersPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    items = AdminService(db).add_users_to_team(context=context, team_id=team_id, user_ids=payload.user_ids)
    return {"items": items}


@router.delete("/{team_id}/members/{user_id}")
def remove_team_member(
    team_id: str,
    user_id: str,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return AdminService(db).remove_user_from_team(context=context, team_id=team_id, user_id=user_id)
