import uuid
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from caseace.auth.schemas import UserSummary
from caseace.billing.models import InvoiceStatus, PaymentMethod
from caseace.time_tracking.models import InvoiceEntryStatus
from caseace.time_tracking.schemas import TimeEntryResponse


class InvoiceCreate(BaseModel):
    case_id: uuid.UUID
    client_id: Optional[uuid.UUID] = None
    issue_date: Optional[date] = None
    due_date: date
    time_entry_ids: list[uuid.UUID] = []
    expense_ids: list[uuid.UUID] = []
    tax_cents: int = Field(default=0, ge=0)
    notes: Optional[str] = None


class InvoiceStatusChange(BaseModel):
    status: InvoiceStatus


class InvoiceCaseSummary(BaseModel):
    id: uuid.UUID
    case_name: str
    case_number: str

    model_config = {"from_attributes": True}


class ExpenseCreate(BaseModel):
    case_id: uuid.UUID
    description: str = Field(min_length=1)
    amount_cents: int = Field(gt=0)
    expense_date: date


class ExpenseResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    case_id: uuid.UUID
    description: str
    amount_cents: int
    expense_date: date
    invoice_status: InvoiceEntryStatus
    invoice_id: Optional[uuid.UUID]
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentCreate(BaseModel):
    invoice_id: uuid.UUID
    amount_cents: int = Field(gt=0)
    method: PaymentMethod
    payment_date: date
    reference: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    id: uuid.UUID
    invoice_id: uuid.UUID
    amount_cents: int
    method: PaymentMethod
    payment_date: date
    reference: Optional[str]
    notes: Optional[str]
    recorded_by_id: uuid.UUID
    created_at: datetime

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    id: uuid.UUID
    invoice_number: str
    case_id: uuid.UUID
    client_id: uuid.UUID
    issue_date: date
    due_date: date
    status: InvoiceStatus
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime
    client: UserSummary
    case: InvoiceCaseSummary

    model_config = {"from_attributes": True}


class InvoiceDetailResponse(InvoiceResponse):
    time_entries: list[TimeEntryResponse]
    expenses: list[ExpenseResponse]
    payments: list[PaymentResponse]


class DraftFromTimeEntries(BaseModel):
    time_entry_ids: list[uuid.UUID] = Field(min_length=1)
    client_id: Optional[uuid.UUID] = None
    case_id: Optional[uuid.UUID] = None
    due_date: Optional[date] = None


class BulkDraftRequest(BaseModel):
    period: Literal["weekly", "monthly"] = "monthly"


class BulkDraftError(BaseModel):
    client_id: uuid.UUID
    error: str


class BulkDraftResult(BaseModel):
    created: int
    invoices: list[InvoiceResponse]
    errors: list[BulkDraftError]
    period: str


class ConsolidateRequest(BaseModel):
    case_id: Optional[uuid.UUID] = None


class ConsolidateResult(BaseModel):
    groups_merged: int
    invoices_removed: int
    invoices: list[InvoiceResponse]


class FinancialSummary(BaseModel):
    total_invoiced_cents: int
    total_paid_cents: int
    outstanding_cents: int
    invoice_count: int
    paid_invoices: int
    overdue_invoices: int


class UnbilledClientGroup(BaseModel):
    client: UserSummary
    total_cents: int
    total_minutes: int
    entry_count: int
    time_entries: list[TimeEntryResponse]
