import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from caseace.auth.schemas import UserSummary
from caseace.communications.models import DocumentRequestStatus


class MessageCreate(BaseModel):
    content: str = Field(min_length=1)


class MessageResponse(BaseModel):
    id: uuid.UUID
    case_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    created_at: datetime
    sender: UserSummary

    model_config = {"from_attributes": True}


class DocumentRequestCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None


class DocumentRequestRespond(BaseModel):
    response: str = Field(min_length=1)


class DocumentRequestResponse(BaseModel):
    id: uuid.UUID
    case_id: uuid.UUID
    requested_by_id: uuid.UUID
    title: str
    description: Optional[str]
    status: DocumentRequestStatus
    response: Optional[str]
    responded_at: Optional[datetime]
    created_at: datetime
    requested_by: UserSummary

    model_config = {"from_attributes": True}
