import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from caseace.auth.schemas import UserSummary
from caseace.time_tracking.models import InvoiceEntryStatus, TimeEntryStatus, TimeEntryType


class TimeEntryCreate(BaseModel):
    case_id: Optional[uuid.UUID] = None
    task_id: Optional[uuid.UUID] = None
    description: str = Field(min_length=1)
    type: TimeEntryType = TimeEntryType.other
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    rate_cents: Optional[int] = Field(default=None, ge=0)
    billable: bool = True

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class TimeEntryUpdate(BaseModel):
    case_id: Optional[uuid.UUID] = None
    task_id: Optional[uuid.UUID] = None
    description: Optional[str] = Field(default=None, min_length=1)
    type: Optional[TimeEntryType] = None
    status: Optional[TimeEntryStatus] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    rate_cents: Optional[int] = Field(default=None, ge=0)
    billable: Optional[bool] = None


class TimeEntryCaseSummary(BaseModel):
    id: uuid.UUID
    case_name: str
    case_number: str
    client_id: uuid.UUID

    model_config = {"from_attributes": True}


class TimeEntryResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    case_id: Optional[uuid.UUID]
    task_id: Optional[uuid.UUID]
    description: str
    type: TimeEntryType
    status: TimeEntryStatus
    start_time: datetime
    end_time: Optional[datetime]
    duration_minutes: Optional[int]
    rate_cents: Optional[int]
    billable: bool
    billable_amount_cents: Optional[int]
    invoice_status: InvoiceEntryStatus
    invoice_id: Optional[uuid.UUID]
    created_at: datetime
    updated_at: datetime
    user: UserSummary
    case: Optional[TimeEntryCaseSummary]

    model_config = {"from_attributes": True}


class TimerStart(BaseModel):
    case_id: Optional[uuid.UUID] = None
    task_id: Optional[uuid.UUID] = None
    description: str = Field(min_length=1)
    type: TimeEntryType = TimeEntryType.other
    rate_cents: Optional[int] = Field(default=None, ge=0)


class TimerStop(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1)
    rate_cents: Optional[int] = Field(default=None, ge=0)
    billable: Optional[bool] = None


class ActiveTimerResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    case_id: Optional[uuid.UUID]
    task_id: Optional[uuid.UUID]
    description: str
    type: TimeEntryType
    rate_cents: Optional[int]
    start_time: datetime

    model_config = {"from_attributes": True}


class TimeReportSummary(BaseModel):
    total_hours: float
    billable_hours: float
    non_billable_hours: float
    total_entries: int


class TimeReport(BaseModel):
    time_entries: list[TimeEntryResponse]
    summary: TimeReportSummary


class BillingBucket(BaseModel):
    amount_cents: int
    count: int


class BillingSummary(BaseModel):
    unbilled: BillingBucket
    billed: BillingBucket
    paid: BillingBucket


class InvoiceStatusUpdate(BaseModel):
    time_entry_ids: list[uuid.UUID] = Field(min_length=1)
    invoice_status: InvoiceEntryStatus
    invoice_id: Optional[uuid.UUID] = None
