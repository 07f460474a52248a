import uuid
from datetime import datetime

from pydantic import BaseModel

from caseace.auth.schemas import UserSummary


class DocumentResponse(BaseModel):
    id: uuid.UUID
    case_id: uuid.UUID
    name: str
    file_type: str
    file_size: int
    uploaded_by_id: uuid.UUID
    uploaded_by: UserSummary
    created_at: datetime

    model_config = {"from_attributes": True}
