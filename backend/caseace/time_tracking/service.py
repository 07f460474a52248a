import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User, UserRole
from caseace.billing.models import Invoice, InvoiceStatus
from caseace.billing.service import recalculate_invoice_totals
from caseace.cases.models import Case
from caseace.common.base_models import as_aware, utcnow
from caseace.common.pagination import page_offset
from caseace.tasks.models import Task
from caseace.time_tracking.models import ActiveTimer, InvoiceEntryStatus, TimeEntry
from caseace.time_tracking.schemas import InvoiceStatusUpdate, TimeEntryCreate, TimeEntryUpdate, TimerStart, TimerStop

logger = logging.getLogger(__name__)

BILLING_FIELDS = ("case_id", "start_time", "end_time", "duration_minutes", "rate_cents", "billable")


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from ``start`` to ``end``, rounded half-up."""
    seconds = (as_aware(end) - as_aware(start)).total_seconds()
    return max(int((seconds + 30) // 60), 0)


async def _check_references(db: AsyncSession, case_id: Optional[uuid.UUID], task_id: Optional[uuid.UUID]) -> None:
    if case_id is not None and await db.get(Case, case_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    if task_id is not None and await db.get(Task, task_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")


def _apply_date_filters(query, count_query, start_date: Optional[datetime], end_date: Optional[datetime]):
    if start_date:
        query = query.where(TimeEntry.start_time >= start_date)
        count_query = count_query.where(TimeEntry.start_time >= start_date)
    if end_date:
        query = query.where(TimeEntry.start_time <= end_date)
        count_query = count_query.where(TimeEntry.start_time <= end_date)
    return query, count_query


# ── Time entries ──────────────────────────────────────────────────────


async def create_time_entry(db: AsyncSession, data: TimeEntryCreate, user_id: uuid.UUID) -> TimeEntry:
    await _check_references(db, data.case_id, data.task_id)

    duration = data.duration_minutes
    if duration is None and data.end_time is not None:
        duration = minutes_between(data.start_time, data.end_time)

    entry = TimeEntry(**data.model_dump(exclude={"duration_minutes"}), duration_minutes=duration, user_id=user_id)
    entry.recompute_billable_amount()
    db.add(entry)
    await db.flush()
    await db.refresh(entry)
    return entry


async def get_time_entries(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 25,
    user_id: Optional[uuid.UUID] = None,
    case_id: Optional[uuid.UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    invoice_status: Optional[InvoiceEntryStatus] = None,
) -> tuple[list[TimeEntry], int]:
    query = select(TimeEntry)
    count_query = select(func.count(TimeEntry.id))

    if user_id:
        query = query.where(TimeEntry.user_id == user_id)
        count_query = count_query.where(TimeEntry.user_id == user_id)
    if case_id:
        query = query.where(TimeEntry.case_id == case_id)
        count_query = count_query.where(TimeEntry.case_id == case_id)
    if invoice_status:
        query = query.where(TimeEntry.invoice_status == invoice_status)
        count_query = count_query.where(TimeEntry.invoice_status == invoice_status)
    query, count_query = _apply_date_filters(query, count_query, start_date, end_date)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(TimeEntry.start_time.desc(), TimeEntry.created_at.desc())
        .offset(page_offset(page, page_size))
        .limit(page_size)
    )
    return result.scalars().all(), total


async def get_time_entry(db: AsyncSession, entry_id: uuid.UUID) -> Optional[TimeEntry]:
    result = await db.execute(select(TimeEntry).where(TimeEntry.id == entry_id))
    return result.scalar_one_or_none()


async def get_own_time_entry(db: AsyncSession, entry_id: uuid.UUID, user: User) -> TimeEntry:
    entry = await get_time_entry(db, entry_id)
    if entry is None or entry.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Time entry not found")
    return entry


async def update_time_entry(db: AsyncSession, entry: TimeEntry, data: TimeEntryUpdate) -> TimeEntry:
    changes = data.model_dump(exclude_unset=True)

    if entry.invoice_status != InvoiceEntryStatus.unbilled and any(f in changes for f in BILLING_FIELDS):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot change billing fields of an invoiced time entry",
        )

    await _check_references(db, changes.get("case_id"), changes.get("task_id"))

    for field, value in changes.items():
        if value is None and field in ("description", "type", "status", "start_time", "billable"):
            continue
        setattr(entry, field, value)

    if "duration_minutes" not in changes and ("start_time" in changes or "end_time" in changes):
        entry.duration_minutes = minutes_between(entry.start_time, entry.end_time) if entry.end_time else None

    entry.recompute_billable_amount()
    await db.flush()
    await db.refresh(entry)
    return entry


async def delete_time_entry(db: AsyncSession, entry: TimeEntry) -> None:
    if entry.invoice_status != InvoiceEntryStatus.unbilled or entry.invoice_id is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete a time entry that has been invoiced",
        )
    await db.delete(entry)
    await db.flush()


async def get_time_report(
    db: AsyncSession,
    user_id: uuid.UUID,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    case_id: Optional[uuid.UUID] = None,
) -> tuple[list[TimeEntry], dict]:
    query = select(TimeEntry).where(TimeEntry.user_id == user_id)
    if case_id:
        query = query.where(TimeEntry.case_id == case_id)
    if start_date:
        query = query.where(TimeEntry.start_time >= start_date)
    if end_date:
        query = query.where(TimeEntry.start_time <= end_date)

    result = await db.execute(query.order_by(TimeEntry.start_time.desc()))
    entries = result.scalars().all()

    total_minutes = sum(e.duration_minutes or 0 for e in entries)
    billable_minutes = sum(e.duration_minutes or 0 for e in entries if e.billable)
    summary = {
        "total_hours": round(total_minutes / 60, 2),
        "billable_hours": round(billable_minutes / 60, 2),
        "non_billable_hours": round((total_minutes - billable_minutes) / 60, 2),
        "total_entries": len(entries),
    }
    return entries, summary


# ── Timers ────────────────────────────────────────────────────────────


async def get_active_timer(db: AsyncSession, user_id: uuid.UUID) -> Optional[ActiveTimer]:
    result = await db.execute(select(ActiveTimer).where(ActiveTimer.user_id == user_id))
    return result.scalar_one_or_none()


async def start_timer(db: AsyncSession, data: TimerStart, user_id: uuid.UUID) -> ActiveTimer:
    if await get_active_timer(db, user_id) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A timer is already running")
    await _check_references(db, data.case_id, data.task_id)

    timer = ActiveTimer(**data.model_dump(), user_id=user_id, start_time=utcnow())
    try:
        async with db.begin_nested():
            db.add(timer)
    except IntegrityError:
        # A concurrent request won the unique constraint on user_id
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A timer is already running")
    await db.refresh(timer)
    return timer


async def stop_timer(db: AsyncSession, data: TimerStop, user_id: uuid.UUID) -> TimeEntry:
    timer = await get_active_timer(db, user_id)
    if timer is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No active timer")

    end_time = utcnow()
    entry = TimeEntry(
        user_id=user_id,
        case_id=timer.case_id,
        task_id=timer.task_id,
        description=data.description or timer.description,
        type=timer.type,
        start_time=as_aware(timer.start_time),
        end_time=end_time,
        duration_minutes=minutes_between(timer.start_time, end_time),
        rate_cents=data.rate_cents if data.rate_cents is not None else timer.rate_cents,
        billable=True if data.billable is None else data.billable,
    )
    entry.recompute_billable_amount()
    db.add(entry)
    await db.delete(timer)
    await db.flush()
    await db.refresh(entry)
    logger.info("Timer stopped for user %s after %s minutes", user_id, entry.duration_minutes)
    return entry


async def cancel_timer(db: AsyncSession, user_id: uuid.UUID) -> None:
    timer = await get_active_timer(db, user_id)
    if timer is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No active timer")
    await db.delete(timer)
    await db.flush()


# ── Billing views ─────────────────────────────────────────────────────


async def get_unbilled_entries(
    db: AsyncSession,
    user: User,
    client_id: Optional[uuid.UUID] = None,
    case_id: Optional[uuid.UUID] = None,
) -> list[TimeEntry]:
    """Billable, priced, not yet invoiced entries. Non-partners only see their own."""
    query = select(TimeEntry).where(
        TimeEntry.invoice_status == InvoiceEntryStatus.unbilled,
        TimeEntry.billable.is_(True),
        TimeEntry.billable_amount_cents.is_not(None),
    )
    if user.role != UserRole.partner:
        query = query.where(TimeEntry.user_id == user.id)
    if case_id:
        query = query.where(TimeEntry.case_id == case_id)
    if client_id:
        query = query.where(TimeEntry.case_id.in_(select(Case.id).where(Case.client_id == client_id)))

    result = await db.execute(query.order_by(TimeEntry.start_time.asc()))
    return result.scalars().all()


async def get_billing_summary(db: AsyncSession, user_id: Optional[uuid.UUID] = None) -> dict:
    """Amount and count of billable entries per invoice status; all users when ``user_id`` is None."""
    query = (
        select(
            TimeEntry.invoice_status,
            func.coalesce(func.sum(TimeEntry.billable_amount_cents), 0),
            func.count(TimeEntry.id),
        )
        .where(TimeEntry.billable.is_(True))
        .group_by(TimeEntry.invoice_status)
    )
    if user_id is not None:
        query = query.where(TimeEntry.user_id == user_id)

    summary = {s.value: {"amount_cents": 0, "count": 0} for s in InvoiceEntryStatus}
    for invoice_status, amount, count in (await db.execute(query)).all():
        summary[InvoiceEntryStatus(invoice_status).value] = {"amount_cents": int(amount), "count": count}
    return summary


async def update_invoice_status(db: AsyncSession, data: InvoiceStatusUpdate) -> int:
    if data.invoice_status == InvoiceEntryStatus.paid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Time entries become paid only through invoice payments",
        )

    target_id = None
    if data.invoice_status == InvoiceEntryStatus.billed:
        if data.invoice_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invoice_id is required to mark entries billed")
        if await db.get(Invoice, data.invoice_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
        target_id = data.invoice_id

    async with db.begin_nested():
        result = await db.execute(select(TimeEntry).where(TimeEntry.id.in_(data.time_entry_ids)))
        entries = result.scalars().all()

        touched_ids = {e.invoice_id for e in entries if e.invoice_id is not None}
        if target_id is not None:
            touched_ids.add(target_id)
        touched = []
        if touched_ids:
            touched = (await db.execute(select(Invoice).where(Invoice.id.in_(touched_ids)))).scalars().all()
        if any(inv.status != InvoiceStatus.draft for inv in touched):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Time entries can only move on or off draft invoices",
            )

        for entry in entries:
            entry.invoice_status = data.invoice_status
            entry.invoice_id = target_id
        await db.flush()

        for invoice in touched:
            await recalculate_invoice_totals(db, invoice)
        await db.flush()

    logger.info("Set %d time entries to %s", len(entries), data.invoice_status.value)
    return len(entries)
