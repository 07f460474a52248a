import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from caseace.auth.models import UserRole


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    role: Optional[UserRole] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = None
    is_active: Optional[bool] = None


class RelatedCounts(BaseModel):
    cases: int
    tasks: int
    time_entries: int
    invoices: int
    appointments: int
    documents: int
    expenses: int
    payments: int
    messages: int
    document_requests: int

    def total(self) -> int:
        return sum(self.model_dump().values())


class UserRelatedRecords(BaseModel):
    user_id: uuid.UUID
    name: str
    email: str
    role: UserRole
    related_records: RelatedCounts
    can_delete: bool


class AuditLogResponse(BaseModel):
    id: uuid.UUID
    seq: int
    user_id: Optional[uuid.UUID]
    user_email: Optional[str]
    entity_type: str
    entity_id: str
    action: str
    changes_json: Optional[str]
    ip_address: Optional[str]
    outcome: str
    severity: str
    integrity_hash: Optional[str]
    previous_hash: Optional[str]
    timestamp: datetime

    model_config = {"from_attributes": True}


class ChainVerification(BaseModel):
    valid: bool
    entries_checked: int
    first_broken_id: Optional[str] = None
