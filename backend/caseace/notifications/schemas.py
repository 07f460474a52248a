import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from caseace.notifications.models import NotificationPriority, NotificationType


class NotificationResponse(BaseModel):
    id: uuid.UUID
    recipient_id: uuid.UUID
    type: NotificationType
    priority: NotificationPriority
    title: str
    message: str
    case_id: Optional[uuid.UUID]
    task_id: Optional[uuid.UUID]
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    count: int
