import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from caseace.common.base_models import GUID, TimestampMixin, UUIDBase


class AttendeeStatus(str, enum.Enum):
    accepted = "accepted"
    tentative = "tentative"
    declined = "declined"


class Appointment(UUIDBase, TimestampMixin):
    __tablename__ = "appointments"

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    case_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cases.id"), nullable=True, index=True)
    created_by_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False)

    attendees = relationship(
        "AppointmentAttendee", back_populates="appointment", lazy="selectin", cascade="all, delete-orphan"
    )
    created_by = relationship("User", lazy="selectin")


class AppointmentAttendee(UUIDBase):
    __tablename__ = "appointment_attendees"
    __table_args__ = (UniqueConstraint("appointment_id", "user_id", name="uq_appointment_attendee"),)

    appointment_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[AttendeeStatus] = mapped_column(Enum(AttendeeStatus), default=AttendeeStatus.tentative, nullable=False)

    appointment = relationship("Appointment", back_populates="attendees")
    user = relationship("User", lazy="selectin")
