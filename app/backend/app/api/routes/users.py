"""User administration and guest access endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import AppRole, RequestUserContext, get_current_user_context
from app.db.dependencies import get_db_session
from app.services.admin_service import (
    AdminService,
    NotificationPreferencesData,
    UserCreateData,
    UserUpdateData,
)

router = APIRouter(tags=["users"])


class UserCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=320)
    role: AppRole
    team_id: str | None = None
    project_id: str | None = None


class NotificationPreferencesPayload(BaseModel):
    on_assignment: bool = True
    on_comment: bool = True
    on_status_change: bool = True
    on_due_date_change: bool = True


class UserUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=3, max_length=320)
    avatar_url: str | None = Field(default=None, max_length=2048)
    role: AppRole | None = None
    team_id: str | None = None
    project_id: str | None = None
    disabled: bool | None = None
    notification_preferences: NotificationPreferencesPayload | None = None


class GuestInvitePayload(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    project_id: str = Field(min_length=1, max_length=64)
    name: str | None = Field(default=None, max_length=255)


@router.get("/users")
def list_users(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": AdminService(db).list_users(context=context)}


@router.get("/users/unassigned")
def list_unassigned_employees(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": AdminService(db).list_unassigned_employees(context=context)}


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return AdminService(db).create_user(context=context, data=UserCreateData(**payload.model_dump()))


@router.patch("/users/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    preferences = payload.notification_preferences
    data = UserUpdateData(
        name=payload.name,
        email=payload.email,
        avatar_url=payload.avatar_url,
        role=payload.role,
        team_id=payload.team_id,
        project_id=payload.project_id,
        disabled=payload.disabled,
        notification_preferences=(
            NotificationPreferencesData(**preferences.model_dump()) if preferences is not None else None
        ),
        fields_set=frozenset(payload.model_fields_set),
    )
    return AdminService(db).update_user(context=context, user_id=user_id, data=data)


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    """Disable the account; guests are removed instead."""

    return AdminService(db).delete_user(context=context, user_id=user_id)


@router.post("/guests", status_code=status.HTTP_201_CREATED)
def invite_guest(
    payload: GuestInvitePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return AdminService(db).invite_guest(
        context=context,
        email=payload.email,
        project_id=payload.project_id,
        name=payload.name,
    )


@router.delete("/guests/{guest_id}")
def revoke_guest(
    guest_id: str,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return AdminService(db).revoke_guest(context=context, guest_id=guest_id)
