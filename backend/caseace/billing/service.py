import logging
import time
import uuid
from collections import defaultdict
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User, UserRole
from caseace.billing.models import Expense, Invoice, InvoiceStatus, Payment
from caseace.billing.schemas import ExpenseCreate, InvoiceCreate, PaymentCreate
from caseace.cases.models import Case
from caseace.common.pagination import page_offset
from caseace.config import settings
from caseace.emails.service import send_invoice_email
from caseace.time_tracking.models import InvoiceEntryStatus, TimeEntry

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """A billing rule rejected the operation; routers answer 400 with the message."""


def compute_tax(subtotal_cents: int) -> int:
    """Tax at the configured rate, rounded half-up to the cent."""
    tax = Decimal(subtotal_cents) * Decimal(str(settings.invoice_tax_rate))
    return int(tax.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


async def recalculate_invoice_totals(db: AsyncSession, invoice: Invoice) -> Invoice:
    """Reset subtotal to the attached time entries plus expenses and recompute tax."""
    entries_total = (
        await db.execute(
            select(func.coalesce(func.sum(TimeEntry.billable_amount_cents), 0)).where(TimeEntry.invoice_id == invoice.id)
        )
    ).scalar_one()
    expenses_total = (
        await db.execute(select(func.coalesce(func.sum(Expense.amount_cents), 0)).where(Expense.invoice_id == invoice.id))
    ).scalar_one()
    subtotal = int(entries_total) + int(expenses_total)
    invoice.set_totals(subtotal, compute_tax(subtotal))
    return invoice


# ── Invoice numbering ─────────────────────────────────────────────────


async def generate_invoice_number(db: AsyncSession) -> str:
    """Next ``INV-{year}-{seq:04d}``, retrying past numbers already taken.

    Falls back to an epoch-millisecond suffix once every attempt collides.
    """
    year = date.today().year
    prefix = f"INV-{year}-"

    for attempt in range(settings.invoice_number_max_attempts):
        count = (
            await db.execute(select(func.count(Invoice.id)).where(Invoice.invoice_number.startswith(prefix)))
        ).scalar_one()
        candidate = f"{prefix}{count + attempt + 1:04d}"
        taken = (await db.execute(select(Invoice.id).where(Invoice.invoice_number == candidate))).scalar_one_or_none()
        if taken is None:
            return candidate
        logger.debug("Invoice number %s taken, retrying", candidate)

    fallback = f"{prefix}{int(time.time() * 1000)}"
    logger.warning("Invoice numbering fell back to %s after %d attempts", fallback, settings.invoice_number_max_attempts)
    return fallback


# ── Invoices ──────────────────────────────────────────────────────────


async def create_invoice(db: AsyncSession, data: InvoiceCreate) -> Invoice:
    case = await db.get(Case, data.case_id)
    if case is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    client_id = data.client_id or case.client_id

    entries = []
    if data.time_entry_ids:
        result = await db.execute(select(TimeEntry).where(TimeEntry.id.in_(data.time_entry_ids)))
        entries = result.scalars().all()
    expenses = []
    if data.expense_ids:
        result = await db.execute(select(Expense).where(Expense.id.in_(data.expense_ids)))
        expenses = result.scalars().all()

    if len(entries) != len(set(data.time_entry_ids)) or len(expenses) != len(set(data.expense_ids)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Some time entries or expenses were not found")
    if any(e.invoice_status != InvoiceEntryStatus.unbilled for e in [*entries, *expenses]):
        raise BillingError("Some time entries or expenses are already invoiced")

    subtotal = sum(e.billable_amount_cents or 0 for e in entries) + sum(x.amount_cents for x in expenses)

    invoice = Invoice(
        invoice_number=await generate_invoice_number(db),
        case_id=case.id,
        client_id=client_id,
        issue_date=data.issue_date or date.today(),
        due_date=data.due_date,
        status=InvoiceStatus.draft,
        notes=data.notes,
    )
    invoice.set_totals(subtotal, data.tax_cents)
    db.add(invoice)
    await db.flush()

    for item in [*entries, *expenses]:
        item.invoice_id = invoice.id
        item.invoice_status = InvoiceEntryStatus.billed

    await db.flush()
    await db.refresh(invoice)
    return invoice


async def get_invoices(
    db: AsyncSession,
    user: User,
    page: int = 1,
    page_size: int = 25,
    case_id: Optional[uuid.UUID] = None,
    client_id: Optional[uuid.UUID] = None,
    status: Optional[InvoiceStatus] = None,
) -> tuple[list[Invoice], int]:
    """Clients only ever see invoices addressed to them."""
    query = select(Invoice)
    count_query = select(func.count(Invoice.id))

    if user.role == UserRole.client:
        client_id = user.id
    if client_id:
        query = query.where(Invoice.client_id == client_id)
        count_query = count_query.where(Invoice.client_id == client_id)
    if case_id:
        query = query.where(Invoice.case_id == case_id)
        count_query = count_query.where(Invoice.case_id == case_id)
    if status:
        query = query.where(Invoice.status == status)
        count_query = count_query.where(Invoice.status == status)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
        .offset(page_offset(page, page_size))
        .limit(page_size)
    )
    return result.scalars().all(), total


async def get_invoice(db: AsyncSession, invoice_id: uuid.UUID) -> Optional[Invoice]:
    result = await db.execute(select(Invoice).where(Invoice.id == invoice_id))
    return result.scalar_one_or_none()


async def get_visible_invoice(db: AsyncSession, user: User, invoice_id: uuid.UUID) -> Invoice:
    invoice = await get_invoice(db, invoice_id)
    if invoice is None or (user.role == UserRole.client and invoice.client_id != user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return invoice


async def update_invoice_status(db: AsyncSession, invoice: Invoice, new_status: InvoiceStatus) -> Invoice:
    invoice.status = new_status
    await db.flush()
    await db.refresh(invoice)
    return invoice


async def send_invoice(db: AsyncSession, invoice: Invoice) -> str:
    """Email the invoice to its client, then mark it sent and issued today."""
    recipient = await send_invoice_email(invoice)
    invoice.status = InvoiceStatus.sent
    invoice.issue_date = date.today()
    await db.flush()
    logger.info("Invoice %s sent to %s", invoice.invoice_number, recipient)
    return recipient


# ── Payments ──────────────────────────────────────────────────────────


async def create_payment(db: AsyncSession, data: PaymentCreate, recorded_by_id: uuid.UUID) -> Payment:
    invoice = await get_invoice(db, data.invoice_id)
    if invoice is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")

    payment = Payment(**data.model_dump(), recorded_by_id=recorded_by_id)
    db.add(payment)
    await db.flush()

    total_paid = (
        await db.execute(
            select(func.coalesce(func.sum(Payment.amount_cents), 0)).where(Payment.invoice_id == invoice.id)
        )
    ).scalar_one()

    if total_paid >= invoice.total_cents:
        invoice.status = InvoiceStatus.paid
        await db.execute(
            update(TimeEntry)
            .where(TimeEntry.invoice_id == invoice.id)
            .values(invoice_status=InvoiceEntryStatus.paid)
            .execution_options(synchronize_session="fetch")
        )
        await db.execute(
            update(Expense)
            .where(Expense.invoice_id == invoice.id)
            .values(invoice_status=InvoiceEntryStatus.paid)
            .execution_options(synchronize_session="fetch")
        )
    elif total_paid > 0:
        invoice.status = InvoiceStatus.partially_paid

    await db.flush()
    await db.refresh(payment)
    return payment


async def get_payments(db: AsyncSession, invoice_id: uuid.UUID) -> list[Payment]:
    result = await db.execute(
        select(Payment).where(Payment.invoice_id == invoice_id).order_by(Payment.payment_date.desc(), Payment.created_at.desc())
    )
    return result.scalars().all()


async def get_financial_summary(
    db: AsyncSession,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    client_id: Optional[uuid.UUID] = None,
) -> dict:
    query = select(Invoice)
    if client_id:
        query = query.where(Invoice.client_id == client_id)
    if start_date:
        query = query.where(Invoice.issue_date >= start_date)
    if end_date:
        query = query.where(Invoice.issue_date <= end_date)
    invoices = (await db.execute(query)).scalars().all()

    today = date.today()
    total_invoiced = sum(inv.total_cents for inv in invoices)
    total_paid = sum(p.amount_cents for inv in invoices for p in inv.payments)
    return {
        "total_invoiced_cents": total_invoiced,
        "total_paid_cents": total_paid,
        "outstanding_cents": total_invoiced - total_paid,
        "invoice_count": len(invoices),
        "paid_invoices": sum(1 for inv in invoices if inv.status == InvoiceStatus.paid),
        "overdue_invoices": sum(1 for inv in invoices if inv.status != InvoiceStatus.paid and inv.due_date < today),
    }


# ── Expenses ──────────────────────────────────────────────────────────


async def create_expense(db: AsyncSession, data: ExpenseCreate, user_id: uuid.UUID) -> Expense:
    if await db.get(Case, data.case_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    expense = Expense(**data.model_dump(), user_id=user_id)
    db.add(expense)
    await db.flush()
    await db.refresh(expense)
    return expense


async def get_expenses(
    db: AsyncSession,
    case_id: Optional[uuid.UUID] = None,
    invoice_status: Optional[InvoiceEntryStatus] = None,
) -> list[Expense]:
    query = select(Expense)
    if case_id:
        query = query.where(Expense.case_id == case_id)
    if invoice_status:
        query = query.where(Expense.invoice_status == invoice_status)
    result = await db.execute(query.order_by(Expense.expense_date.desc()))
    return result.scalars().all()


# ── Drafts ────────────────────────────────────────────────────────────


async def get_unbilled_time_by_client(db: AsyncSession, client_id: Optional[uuid.UUID] = None) -> list[dict]:
    """Unbilled billable entries on cases, grouped by the case's client."""
    query = (
        select(TimeEntry)
        .join(Case, TimeEntry.case_id == Case.id)
        .where(TimeEntry.billable.is_(True), TimeEntry.invoice_status == InvoiceEntryStatus.unbilled)
    )
    if client_id:
        query = query.where(Case.client_id == client_id)
    entries = (await db.execute(query.order_by(TimeEntry.start_time.desc()))).scalars().all()

    groups: dict[uuid.UUID, dict] = {}
    for entry in entries:
        client = entry.case.client
        group = groups.setdefault(
            client.id,
            {"client": client, "total_cents": 0, "total_minutes": 0, "entry_count": 0, "time_entries": []},
        )
        group["time_entries"].append(entry)
        group["total_cents"] += entry.billable_amount_cents or 0
        group["total_minutes"] += entry.duration_minutes or 0
        group["entry_count"] += 1
    return list(groups.values())


async def create_draft_invoice_from_time_entries(
    db: AsyncSession,
    time_entry_ids: list[uuid.UUID],
    client_id: Optional[uuid.UUID] = None,
    case_id: Optional[uuid.UUID] = None,
    due_date: Optional[date] = None,
) -> Invoice:
    """Bill unbilled entries onto the open draft for (case, client), creating one if needed.

    Runs inside a SAVEPOINT so a failure leaves neither a half-built invoice
    nor half-billed entries behind.
    """
    async with db.begin_nested():
        result = await db.execute(
            select(TimeEntry)
            .where(TimeEntry.id.in_(time_entry_ids), TimeEntry.invoice_status == InvoiceEntryStatus.unbilled)
            .order_by(TimeEntry.start_time.asc())
        )
        entries = result.scalars().all()
        if not entries:
            raise BillingError("No unbilled time entries found")

        if case_id is None:
            case_id = next((e.case_id for e in entries if e.case_id is not None), None)
        if case_id is None:
            raise BillingError("Case information required. Time entries must be associated with a case.")
        case = await db.get(Case, case_id)
        if case is None:
            raise BillingError("Case not found")
        if client_id is None:
            client_id = case.client_id

        subtotal = sum(e.billable_amount_cents or 0 for e in entries)

        existing = (
            await db.execute(
                select(Invoice)
                .where(Invoice.case_id == case_id, Invoice.client_id == client_id, Invoice.status == InvoiceStatus.draft)
                .order_by(Invoice.created_at.asc())
                .limit(1)
            )
        ).scalar_one_or_none()

        if existing is not None:
            invoice = existing
            merged = invoice.subtotal_cents + subtotal
            invoice.set_totals(merged, compute_tax(merged))
            logger.info("Merged %d time entries into draft invoice %s", len(entries), invoice.invoice_number)
        else:
            today = date.today()
            invoice = Invoice(
                invoice_number=await generate_invoice_number(db),
                case_id=case_id,
                client_id=client_id,
                issue_date=today,
                due_date=due_date or today + timedelta(days=settings.invoice_due_days),
                status=InvoiceStatus.draft,
                notes=f"Draft invoice generated from {len(entries)} time entries",
            )
            invoice.set_totals(subtotal, compute_tax(subtotal))
            db.add(invoice)
            await db.flush()
            logger.info("Created draft invoice %s from %d time entries", invoice.invoice_number, len(entries))

        for entry in entries:
            entry.invoice_id = invoice.id
            entry.invoice_status = InvoiceEntryStatus.billed

    await db.refresh(invoice)
    return invoice


async def create_bulk_draft_invoices(db: AsyncSession, period: str = "monthly") -> dict:
    """One draft per client with unbilled time. A failing client is reported, never fatal."""
    created: list[Invoice] = []
    errors: list[dict] = []

    for group in await get_unbilled_time_by_client(db):
        client_id = group["client"].id
        try:
            invoice = await create_draft_invoice_from_time_entries(
                db, [e.id for e in group["time_entries"]], client_id=client_id
            )
        except (BillingError, SQLAlchemyError) as exc:
            logger.exception("Failed to create draft invoice for client %s", client_id)
            errors.append({"client_id": client_id, "error": str(exc)})
            continue
        created.append(invoice)

    return {"created": len(created), "invoices": created, "errors": errors, "period": period}


async def consolidate_draft_invoices(db: AsyncSession, case_id: Optional[uuid.UUID] = None) -> dict:
    """Fold duplicate drafts for the same (case, client) into the earliest one."""
    query = select(Invoice).where(Invoice.status == InvoiceStatus.draft)
    if case_id:
        query = query.where(Invoice.case_id == case_id)
    drafts = (await db.execute(query.order_by(Invoice.created_at.asc(), Invoice.invoice_number.asc()))).scalars().all()

    groups: dict[tuple, list[Invoice]] = defaultdict(list)
    for invoice in drafts:
        groups[(invoice.case_id, invoice.client_id)].append(invoice)

    survivors = []
    removed = 0
    for invoices in groups.values():
        if len(invoices) < 2:
            continue
        survivor, duplicates = invoices[0], invoices[1:]
        duplicate_ids = [inv.id for inv in duplicates]

        async with db.begin_nested():
            subtotal = sum(inv.subtotal_cents for inv in invoices)
            survivor.set_totals(subtotal, compute_tax(subtotal))
            for model in (TimeEntry, Expense, Payment):
                await db.execute(
                    update(model)
                    .where(model.invoice_id.in_(duplicate_ids))
                    .values(invoice_id=survivor.id)
                    .execution_options(synchronize_session="fetch")
                )
            await db.execute(
                delete(Invoice).where(Invoice.id.in_(duplicate_ids)).execution_options(synchronize_session="fetch")
            )

        await db.refresh(survivor)
        survivors.append(survivor)
        removed += len(duplicates)
        logger.info("Consolidated %d drafts into %s", len(invoices), survivor.invoice_number)

    return {"groups_merged": len(survivors), "invoices_removed": removed, "invoices": survivors}
