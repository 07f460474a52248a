"""Initial schema - all tables

Revision ID: 0001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    entry_type = sa.Enum(
        "research", "drafting", "meeting", "court", "call", "email", "travel", "other", name="timeentrytype"
    )
    billing_state = sa.Enum("unbilled", "billed", "paid", name="invoiceentrystatus")
    # Already created with time_entries
    existing_entry_type = postgresql.ENUM(name="timeentrytype", create_type=False)
    existing_billing_state = postgresql.ENUM(name="invoiceentrystatus", create_type=False)

    # ── Auth ──────────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("email", sa.String(255), unique=True, index=True, nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("role", sa.Enum("partner", "associate", "paralegal", "client", name="userrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
    )

    # Audit Log (tamper-evident hash chain)
    op.create_table(
        "audit_log",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("seq", sa.Integer(), unique=True, index=True, nullable=False),
        sa.Column("user_id", UUID, nullable=True, index=True),
        sa.Column("user_email", sa.String(255), nullable=True),
        sa.Column("entity_type", sa.String(100), nullable=False, index=True),
        sa.Column("entity_id", sa.String(100), nullable=False, index=True),
        sa.Column("action", sa.String(50), nullable=False, index=True),
        sa.Column("changes_json", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("outcome", sa.String(20), nullable=False, server_default="success"),
        sa.Column("severity", sa.String(20), nullable=False, server_default="info"),
        sa.Column("integrity_hash", sa.String(64), nullable=False, index=True),
        sa.Column("previous_hash", sa.String(64), nullable=True),
        sa.Column("hashed_at", sa.String(40), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )

    # ── Cases & tasks ─────────────────────────────────────────────────

    op.create_table(
        "cases",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("case_number", sa.String(50), unique=True, index=True, nullable=False),
        sa.Column("case_name", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Enum("open", "pending", "closed", name="casestatus"), nullable=False),
        sa.Column("practice_area", sa.String(100), nullable=True),
        sa.Column("client_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("created_by_id", UUID, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "case_assignments",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("case_id", UUID, sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("role", sa.String(50), nullable=False, server_default="assigned"),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("case_id", "user_id", name="uq_case_assignment_case_user"),
    )

    op.create_table(
        "tasks",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("case_id", UUID, sa.ForeignKey("cases.id"), nullable=False, index=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.Enum("todo", "in_progress", "done", name="taskstatus"), nullable=False, index=True),
        sa.Column("assigned_to_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("assigned_by_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )

    # ── Billing & time ────────────────────────────────────────────────

    op.create_table(
        "invoices",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("invoice_number", sa.String(50), unique=True, index=True, nullable=False),
        sa.Column("case_id", UUID, sa.ForeignKey("cases.id"), nullable=False, index=True),
        sa.Column("client_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("draft", "sent", "partially_paid", "paid", "overdue", name="invoicestatus"),
            nullable=False,
            index=True,
        ),
        sa.Column("subtotal_cents", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("tax_cents", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("total_cents", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "time_entries",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("case_id", UUID, sa.ForeignKey("cases.id"), nullable=True, index=True),
        sa.Column("task_id", UUID, sa.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("type", entry_type, nullable=False),
        sa.Column("status", sa.Enum("draft", "submitted", "approved", name="timeentrystatus"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("rate_cents", sa.Integer(), nullable=True),
        sa.Column("billable", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("billable_amount_cents", sa.BigInteger(), nullable=True),
        sa.Column("invoice_status", billing_state, nullable=False, index=True),
        sa.Column("invoice_id", UUID, sa.ForeignKey("invoices.id"), nullable=True, index=True),
        *_timestamps(),
    )

    op.create_table(
        "active_timers",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), unique=True, nullable=False),
        sa.Column("case_id", UUID, sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=True),
        sa.Column("task_id", UUID, sa.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("type", existing_entry_type, nullable=False),
        sa.Column("rate_cents", sa.Integer(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "expenses",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("case_id", UUID, sa.ForeignKey("cases.id"), nullable=False, index=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("invoice_status", existing_billing_state, nullable=False),
        sa.Column("invoice_id", UUID, sa.ForeignKey("invoices.id"), nullable=True, index=True),
        *_timestamps(),
    )

    op.create_table(
        "payments",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("invoice_id", UUID, sa.ForeignKey("invoices.id"), nullable=False, index=True),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column(
            "method",
            sa.Enum("cash", "check", "credit_card", "bank_transfer", "other", name="paymentmethod"),
            nullable=False,
        ),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recorded_by_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── Calendar, documents, communications ──────────────────────────

    op.create_table(
        "appointments",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("case_id", UUID, sa.ForeignKey("cases.id"), nullable=True, index=True),
        sa.Column("created_by_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "appointment_attendees",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "appointment_id", UUID, sa.ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
        ),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("status", sa.Enum("accepted", "tentative", "declined", name="attendeestatus"), nullable=False),
        sa.UniqueConstraint("appointment_id", "user_id", name="uq_appointment_attendee"),
    )

    op.create_table(
        "documents",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("case_id", UUID, sa.ForeignKey("cases.id"), nullable=False, index=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("file_type", sa.String(255), nullable=False),
        sa.Column("storage_key", sa.String(1000), unique=True, nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("uploaded_by_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "messages",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("case_id", UUID, sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("sender_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "document_requests",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("case_id", UUID, sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("requested_by_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Enum("pending", "responded", name="documentrequeststatus"), nullable=False),
        sa.Column("response", sa.Text(), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "notifications",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("recipient_id", UUID, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column(
            "type",
            sa.Enum(
                "task_assigned", "task_updated", "case_assigned", "case_update",
                "appointment", "invoice", "document", "system",
                name="notificationtype",
            ),
            nullable=False,
        ),
        sa.Column("priority", sa.Enum("low", "medium", "high", name="notificationpriority"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("case_id", UUID, nullable=True),
        sa.Column("task_id", UUID, nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.text("false"), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    for table in (
        "notifications",
        "document_requests",
        "messages",
        "documents",
        "appointment_attendees",
        "appointments",
        "payments",
        "expenses",
        "active_timers",
        "time_entries",
        "invoices",
        "tasks",
        "case_assignments",
        "cases",
        "audit_log",
        "users",
    ):
        op.drop_table(table)
    for enum_name in (
        "notificationpriority",
        "notificationtype",
        "documentrequeststatus",
        "attendeestatus",
        "paymentmethod",
        "invoiceentrystatus",
        "timeentrystatus",
        "timeentrytype",
        "invoicestatus",
        "taskstatus",
        "casestatus",
        "userrole",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
