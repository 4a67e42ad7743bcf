"""Sign-up, sign-in and current user endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context
from app.db.dependencies import get_db_session
from app.services.admin_service import AdminService

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterPayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=8, max_length=256)


class LoginPayload(BaseModel):
    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=256)


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    """Create an organization owner account and return a session token."""

    return AdminService(db).register_organization(
        name=payload.name,
        email=payload.email,
        credential=payload.password,
    )


@router.post("/login")
def login(payload: LoginPayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    return AdminService(db).login(email=payload.email, credential=payload.password)


@router.get("/me")
def get_me(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return AdminService(db).get_profile(context=context)
