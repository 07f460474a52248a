import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from caseace.common.base_models import GUID, UUIDBase


class NotificationType(str, enum.Enum):
    task_assigned = "task_assigned"
    task_updated = "task_updated"
    case_assigned = "case_assigned"
    case_update = "case_update"
    appointment = "appointment"
    invoice = "invoice"
    document = "document"
    system = "system"


class NotificationPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"


class Notification(UUIDBase):
    __tablename__ = "notifications"

    recipient_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType), nullable=False)
    priority: Mapped[NotificationPriority] = mapped_column(
        Enum(NotificationPriority), default=NotificationPriority.medium, nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # No FK: notifications outlive the case or task they mention
    case_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), nullable=True)
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
