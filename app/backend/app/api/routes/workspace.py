"""Role-scoped workspace snapshot and search endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context
from app.db.dependencies import get_db_session
from app.services.search_service import SearchService
from app.services.tracker_service import TrackerService

router = APIRouter(tags=["workspace"])


@router.get("/bootstrap")
def bootstrap(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[dict[str, object]]]:
    """Everything the caller may see: users, teams, projects, tasks and finances."""

    return TrackerService(db).bootstrap(context=context)


@router.get("/search")
def search(
    q: str = Query(default="", max_length=200),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[dict[str, object]]]:
    return SearchService(db).search(context=context, query=q)
