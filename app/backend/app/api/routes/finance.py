"""Project finance endpoints: income and expense entries and totals."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context
from app.db.dependencies import get_db_session
from app.models.entities import FinancialEntryType
from app.services.tracker_service import FinancialEntryCreateData, TrackerService

router = APIRouter(prefix="/finances", tags=["finance"])


class FinancialEntryCreatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: FinancialEntryType
    project_id: str = Field(min_length=1, max_length=64)
    entry_date: date = Field(alias="date")
    source: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=2000)
    amount: Decimal = Field(gt=0)


@router.get("")
def list_financial_entries(
    project_id: str | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": TrackerService(db).list_financials(context=context, project_id=project_id)}


@router.post("", status_code=status.HTTP_201_CREATED)
def add_financial_entry(
    payload: FinancialEntryCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return TrackerService(db).add_financial_transaction(
        context=context,
        data=FinancialEntryCreateData(
            entry_type=payload.type,
            project_id=payload.project_id,
            entry_date=payload.entry_date,
            source=payload.source,
            description=payload.description,
            amount=payload.amount,
        ),
    )


@router.get("/summary")
def financial_summary(
    team_id: str | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, str]:
    return TrackerService(db).financial_summary(context=context, team_id=team_id)
