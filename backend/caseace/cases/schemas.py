import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from caseace.auth.schemas import UserSummary
from caseace.cases.models import CaseStatus


class CaseCreate(BaseModel):
    case_name: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    practice_area: Optional[str] = Field(default=None, max_length=100)
    status: CaseStatus = CaseStatus.open

    # Either an existing client...
    client_id: Optional[uuid.UUID] = None
    # ...or a new one created inline
    client_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = Field(default=None, max_length=50)
    client_address: Optional[str] = None
    client_password: Optional[str] = Field(default=None, min_length=8, max_length=128)
    send_credentials_email: bool = False

    assigned_user_ids: list[uuid.UUID] = []


class CaseUpdate(BaseModel):
    case_name: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    practice_area: Optional[str] = Field(default=None, max_length=100)
    status: Optional[CaseStatus] = None


class AssignUsersRequest(BaseModel):
    user_ids: list[uuid.UUID] = Field(min_length=1)


class CaseAssignmentResponse(BaseModel):
    id: uuid.UUID
    case_id: uuid.UUID
    user_id: uuid.UUID
    role: str
    assigned_at: datetime
    user: UserSummary

    model_config = {"from_attributes": True}


class CaseResponse(BaseModel):
    id: uuid.UUID
    case_number: str
    case_name: str
    description: Optional[str]
    status: CaseStatus
    practice_area: Optional[str]
    client_id: uuid.UUID
    created_by_id: Optional[uuid.UUID]
    closed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    client: UserSummary
    assignments: list[CaseAssignmentResponse] = []

    model_config = {"from_attributes": True}


class ClientLoginInfo(BaseModel):
    email: str
    password: str


class CaseCreateResponse(CaseResponse):
    client_login_info: Optional[ClientLoginInfo] = None
