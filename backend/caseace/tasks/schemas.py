import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from caseace.auth.schemas import UserSummary
from caseace.tasks.models import TaskStatus


class TaskCreate(BaseModel):
    case_id: uuid.UUID
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    assigned_to_id: uuid.UUID
    status: TaskStatus = TaskStatus.todo


class CaseTaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    assigned_to_id: uuid.UUID
    status: TaskStatus = TaskStatus.todo


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    assigned_to_id: Optional[uuid.UUID] = None
    status: Optional[TaskStatus] = None


class TaskCaseSummary(BaseModel):
    id: uuid.UUID
    case_name: str
    case_number: str

    model_config = {"from_attributes": True}


class TaskResponse(BaseModel):
    id: uuid.UUID
    case_id: uuid.UUID
    title: str
    description: Optional[str]
    deadline: Optional[datetime]
    status: TaskStatus
    assigned_to_id: uuid.UUID
    assigned_by_id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    case: TaskCaseSummary
    assigned_to: UserSummary
    assigned_by: UserSummary

    model_config = {"from_attributes": True}
