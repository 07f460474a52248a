import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from caseace.common.base_models import GUID, TimestampMixin, UUIDBase


class TimeEntryType(str, enum.Enum):
    research = "research"
    drafting = "drafting"
    meeting = "meeting"
    court = "court"
    call = "call"
    email = "email"
    travel = "travel"
    other = "other"


class TimeEntryStatus(str, enum.Enum):
    draft = "draft"
    submitted = "submitted"
    approved = "approved"


class InvoiceEntryStatus(str, enum.Enum):
    unbilled = "unbilled"
    billed = "billed"
    paid = "paid"


def compute_billable_amount(billable: bool, duration_minutes: Optional[int], rate_cents: Optional[int]) -> Optional[int]:
    """Charge for ``duration_minutes`` at an hourly ``rate_cents``, rounded half-up to the cent.

    None unless the entry is billable and both duration and rate are set.
    """
    if not billable or duration_minutes is None or rate_cents is None:
        return None
    return (duration_minutes * rate_cents + 30) // 60


class TimeEntry(UUIDBase, TimestampMixin):
    __tablename__ = "time_entries"

    user_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    case_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cases.id"), nullable=True, index=True)
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[TimeEntryType] = mapped_column(Enum(TimeEntryType), default=TimeEntryType.other, nullable=False)
    status: Mapped[TimeEntryStatus] = mapped_column(Enum(TimeEntryStatus), default=TimeEntryStatus.draft, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rate_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    billable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    billable_amount_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    invoice_status: Mapped[InvoiceEntryStatus] = mapped_column(
        Enum(InvoiceEntryStatus), default=InvoiceEntryStatus.unbilled, nullable=False, index=True
    )
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("invoices.id"), nullable=True, index=True)

    user = relationship("User", lazy="selectin")
    case = relationship("Case", lazy="selectin")

    def recompute_billable_amount(self) -> None:
        self.billable_amount_cents = compute_billable_amount(self.billable, self.duration_minutes, self.rate_cents)


class ActiveTimer(UUIDBase):
    """At most one running timer per user; ``user_id`` is unique."""

    __tablename__ = "active_timers"

    user_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False, unique=True)
    case_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cases.id", ondelete="CASCADE"), nullable=True)
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[TimeEntryType] = mapped_column(Enum(TimeEntryType), default=TimeEntryType.other, nullable=False)
    rate_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
