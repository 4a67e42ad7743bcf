"""Notification inbox endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context
from app.db.dependencies import get_db_session
from app.services.notification_service import NotificationService
from app.services.views import serialize_notification

router = APIRouter(prefix="/notifications", tags=["notifications"])


class MarkReadPayload(BaseModel):
    notification_ids: list[str] = Field(min_length=1)


@router.get("")
def list_notifications(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    rows = NotificationService(db).list_notifications(context=context)
    return {"items": [serialize_notification(row) for row in rows]}


@router.post("/read")
def mark_notifications_read(
    payload: MarkReadPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, int]:
    updated = NotificationService(db).mark_read(context=context, notification_ids=payload.notification_ids)
    return {"updated": updated}
