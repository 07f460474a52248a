import uuid
from typing import Optional

from pydantic import BaseModel

from caseace.auth.schemas import UserSummary
from caseace.cases.models import CaseStatus


class DashboardMetrics(BaseModel):
    total_cases: int
    active_cases: int
    recent_time_entries: int
    pending_invoices: int
    overdue_invoices: int
    recent_revenue_cents: int


class MonthlyTrend(BaseModel):
    month: str
    invoiced_cents: int
    paid_cents: int
    outstanding_cents: int


class PracticeAreaBreakdown(BaseModel):
    practice_area: str
    invoiced_cents: int
    paid_cents: int
    count: int


class FinancialTotals(BaseModel):
    total_invoiced_cents: int
    total_paid_cents: int
    average_invoice_cents: int


class FinancialAnalytics(BaseModel):
    monthly_trends: list[MonthlyTrend]
    practice_areas: list[PracticeAreaBreakdown]
    summary: FinancialTotals


class UserProductivity(BaseModel):
    user: UserSummary
    total_hours: float
    billable_hours: float
    entries: int
    cases_worked: int
    utilization_rate: float


class CaseMetrics(BaseModel):
    total_hours: float
    total_expenses_cents: int
    total_invoiced_cents: int
    total_paid_cents: int
    outstanding_cents: int
    completed_tasks: int
    total_tasks: int
    document_count: int


class CaseAnalytics(BaseModel):
    case_id: uuid.UUID
    case_number: str
    case_name: str
    status: CaseStatus
    practice_area: Optional[str]
    metrics: CaseMetrics
