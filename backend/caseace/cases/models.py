import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from caseace.common.base_models import GUID, TimestampMixin, UUIDBase


class CaseStatus(str, enum.Enum):
    open = "open"
    pending = "pending"
    closed = "closed"


class Case(UUIDBase, TimestampMixin):
    __tablename__ = "cases"

    case_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    case_name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[CaseStatus] = mapped_column(Enum(CaseStatus), default=CaseStatus.open, nullable=False)
    practice_area: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("users.id"), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    client = relationship("User", foreign_keys=[client_id], lazy="selectin")
    assignments = relationship("CaseAssignment", back_populates="case", lazy="selectin", cascade="all, delete-orphan")


class CaseAssignment(UUIDBase):
    __tablename__ = "case_assignments"
    __table_args__ = (UniqueConstraint("case_id", "user_id", name="uq_case_assignment_case_user"),)

    case_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(50), default="assigned", nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    case = relationship("Case", back_populates="assignments")
    user = relationship("User", lazy="selectin")
