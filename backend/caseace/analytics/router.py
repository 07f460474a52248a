import uuid
from datetime import date, timedelta
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.analytics.schemas import CaseAnalytics, DashboardMetrics, FinancialAnalytics, UserProductivity
from caseace.analytics.service import (
    get_case_analytics,
    get_dashboard_metrics,
    get_financial_analytics,
    get_productivity_analytics,
)
from caseace.auth.models import User
from caseace.database import get_db
from caseace.dependencies import STAFF_ROLES, require_roles

router = APIRouter()


def _resolve_period(start_date: Optional[date], end_date: Optional[date]) -> tuple[date, date]:
    """Default to the trailing twelve months."""
    end = end_date or date.today()
    start = start_date or end - timedelta(days=365)
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must not be after end_date")
    return start, end


@router.get("/dashboard", response_model=DashboardMetrics)
async def dashboard(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles(*STAFF_ROLES))],
):
    return await get_dashboard_metrics(db)


@router.get("/financial", response_model=FinancialAnalytics)
async def financial(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles("partner"))],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
):
    start, end = _resolve_period(start_date, end_date)
    return await get_financial_analytics(db, start, end)


@router.get("/productivity", response_model=list[UserProductivity])
async def productivity(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles("partner", "associate"))],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user_id: Optional[uuid.UUID] = None,
):
    start, end = _resolve_period(start_date, end_date)
    return await get_productivity_analytics(db, start, end, user_id)


@router.get("/cases", response_model=list[CaseAnalytics])
async def cases(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles(*STAFF_ROLES))],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    case_id: Optional[uuid.UUID] = None,
):
    start, end = _resolve_period(start_date, end_date)
    return await get_case_analytics(db, current_user, start, end, case_id)
