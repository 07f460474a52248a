import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from caseace.common.base_models import GUID, TimestampMixin, UUIDBase


class DocumentRequestStatus(str, enum.Enum):
    pending = "pending"
    responded = "responded"


class Message(UUIDBase, TimestampMixin):
    __tablename__ = "messages"

    case_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    sender = relationship("User", lazy="selectin")


class DocumentRequest(UUIDBase, TimestampMixin):
    __tablename__ = "document_requests"

    case_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    requested_by_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[DocumentRequestStatus] = mapped_column(
        Enum(DocumentRequestStatus), default=DocumentRequestStatus.pending, nullable=False
    )
    response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    requested_by = relationship("User", lazy="selectin")
