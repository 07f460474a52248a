import enum
import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import BigInteger, Date, DateTime, Enum, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from caseace.common.base_models import GUID, TimestampMixin, UUIDBase
from caseace.time_tracking.models import InvoiceEntryStatus


class InvoiceStatus(str, enum.Enum):
    draft = "draft"
    sent = "sent"
    partially_paid = "partially_paid"
    paid = "paid"
    overdue = "overdue"


class PaymentMethod(str, enum.Enum):
    cash = "cash"
    check = "check"
    credit_card = "credit_card"
    bank_transfer = "bank_transfer"
    other = "other"


class Invoice(UUIDBase, TimestampMixin):
    __tablename__ = "invoices"

    invoice_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    case_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cases.id"), nullable=False, index=True)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(Enum(InvoiceStatus), default=InvoiceStatus.draft, nullable=False, index=True)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    tax_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    time_entries = relationship("TimeEntry", lazy="selectin", foreign_keys="TimeEntry.invoice_id")
    expenses = relationship("Expense", back_populates="invoice", lazy="selectin")
    payments = relationship("Payment", back_populates="invoice", lazy="selectin", order_by="Payment.created_at")
    client = relationship("User", foreign_keys=[client_id], lazy="selectin")
    case = relationship("Case", lazy="selectin")

    def set_totals(self, subtotal_cents: int, tax_cents: int) -> None:
        self.subtotal_cents = subtotal_cents
        self.tax_cents = tax_cents
        self.total_cents = subtotal_cents + tax_cents


class Expense(UUIDBase, TimestampMixin):
    __tablename__ = "expenses"

    user_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    case_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cases.id"), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_status: Mapped[InvoiceEntryStatus] = mapped_column(
        Enum(InvoiceEntryStatus), default=InvoiceEntryStatus.unbilled, nullable=False
    )
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("invoices.id"), nullable=True, index=True)

    invoice = relationship("Invoice", back_populates="expenses")


class Payment(UUIDBase):
    __tablename__ = "payments"

    invoice_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("invoices.id"), nullable=False, index=True)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recorded_by_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    invoice = relationship("Invoice", back_populates="payments")
