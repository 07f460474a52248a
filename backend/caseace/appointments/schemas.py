import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from caseace.appointments.models import AttendeeStatus
from caseace.auth.schemas import UserSummary
from caseace.time_tracking.models import TimeEntryType


class AppointmentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    case_id: Optional[uuid.UUID] = None
    attendee_ids: list[uuid.UUID] = []

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class AppointmentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    case_id: Optional[uuid.UUID] = None
    attendee_ids: Optional[list[uuid.UUID]] = None


class AttendeeResponse(BaseModel):
    user_id: uuid.UUID
    status: AttendeeStatus
    user: UserSummary

    model_config = {"from_attributes": True}


class AppointmentResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str]
    start_time: datetime
    end_time: datetime
    location: Optional[str]
    case_id: Optional[uuid.UUID]
    created_by_id: uuid.UUID
    created_at: datetime
    created_by: UserSummary
    attendees: list[AttendeeResponse]

    model_config = {"from_attributes": True}


class ConvertToTimeEntry(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1)
    rate_cents: Optional[int] = Field(default=None, ge=0)
    type: TimeEntryType = TimeEntryType.meeting
