import uuid
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User
from caseace.billing.models import Expense, Invoice, InvoiceStatus, Payment
from caseace.cases.access import visible_cases_clause
from caseace.cases.models import Case, CaseStatus
from caseace.documents.models import Document
from caseace.tasks.models import Task, TaskStatus
from caseace.time_tracking.models import TimeEntry


def _day_bounds(start_date: date, end_date: date) -> tuple[datetime, datetime]:
    return (
        datetime.combine(start_date, time.min, tzinfo=timezone.utc),
        datetime.combine(end_date, time.max, tzinfo=timezone.utc),
    )


async def get_dashboard_metrics(db: AsyncSession) -> dict:
    today = date.today()
    thirty_days_ago = today - timedelta(days=30)
    since, _ = _day_bounds(thirty_days_ago, today)

    total_cases = (await db.execute(select(func.count(Case.id)))).scalar_one()
    active_cases = (await db.execute(select(func.count(Case.id)).where(Case.status == CaseStatus.open))).scalar_one()
    recent_entries = (
        await db.execute(select(func.count(TimeEntry.id)).where(TimeEntry.start_time >= since))
    ).scalar_one()
    pending_invoices = (
        await db.execute(select(func.count(Invoice.id)).where(Invoice.status == InvoiceStatus.sent))
    ).scalar_one()
    overdue_invoices = (
        await db.execute(
            select(func.count(Invoice.id)).where(
                Invoice.status.in_([InvoiceStatus.sent, InvoiceStatus.partially_paid, InvoiceStatus.overdue]),
                Invoice.due_date < today,
            )
        )
    ).scalar_one()
    recent_revenue = (
        await db.execute(
            select(func.coalesce(func.sum(Payment.amount_cents), 0)).where(Payment.payment_date >= thirty_days_ago)
        )
    ).scalar_one()

    return {
        "total_cases": total_cases,
        "active_cases": active_cases,
        "recent_time_entries": recent_entries,
        "pending_invoices": pending_invoices,
        "overdue_invoices": overdue_invoices,
        "recent_revenue_cents": int(recent_revenue),
    }


async def get_financial_analytics(db: AsyncSession, start_date: date, end_date: date) -> dict:
    result = await db.execute(
        select(Invoice).where(Invoice.issue_date >= start_date, Invoice.issue_date <= end_date)
    )
    invoices = result.scalars().all()

    monthly: dict[str, dict] = defaultdict(lambda: {"invoiced_cents": 0, "paid_cents": 0, "outstanding_cents": 0})
    areas: dict[str, dict] = defaultdict(lambda: {"invoiced_cents": 0, "paid_cents": 0, "count": 0})
    total_invoiced = total_paid = 0

    for invoice in invoices:
        paid = sum(p.amount_cents for p in invoice.payments)
        month = monthly[invoice.issue_date.strftime("%Y-%m")]
        month["invoiced_cents"] += invoice.total_cents
        month["paid_cents"] += paid
        month["outstanding_cents"] += invoice.total_cents - paid

        area = areas[invoice.case.practice_area or "Unknown"]
        area["invoiced_cents"] += invoice.total_cents
        area["paid_cents"] += paid
        area["count"] += 1

        total_invoiced += invoice.total_cents
        total_paid += paid

    return {
        "monthly_trends": [{"month": m, **data} for m, data in sorted(monthly.items())],
        "practice_areas": [{"practice_area": a, **data} for a, data in sorted(areas.items())],
        "summary": {
            "total_invoiced_cents": total_invoiced,
            "total_paid_cents": total_paid,
            "average_invoice_cents": total_invoiced // len(invoices) if invoices else 0,
        },
    }


async def get_productivity_analytics(
    db: AsyncSession, start_date: date, end_date: date, user_id: Optional[uuid.UUID] = None
) -> list[dict]:
    """Hours per user in the period; utilization is billable over total hours, as a percentage."""
    since, until = _day_bounds(start_date, end_date)
    query = (
        select(
            TimeEntry.user_id,
            func.coalesce(func.sum(TimeEntry.duration_minutes), 0),
            func.coalesce(func.sum(case((TimeEntry.billable.is_(True), TimeEntry.duration_minutes), else_=0)), 0),
            func.count(TimeEntry.id),
            func.count(func.distinct(TimeEntry.case_id)),
        )
        .where(TimeEntry.start_time >= since, TimeEntry.start_time <= until)
        .group_by(TimeEntry.user_id)
    )
    if user_id:
        query = query.where(TimeEntry.user_id == user_id)
    rows = (await db.execute(query)).all()

    users = {}
    if rows:
        result = await db.execute(select(User).where(User.id.in_([r[0] for r in rows])))
        users = {u.id: u for u in result.scalars().all()}

    stats = []
    for uid, total_minutes, billable_minutes, entries, cases_worked in rows:
        total_hours = round(total_minutes / 60, 2)
        stats.append({
            "user": users[uid],
            "total_hours": total_hours,
            "billable_hours": round(billable_minutes / 60, 2),
            "entries": entries,
            "cases_worked": cases_worked,
            "utilization_rate": round(billable_minutes / total_minutes * 100, 1) if total_minutes > 0 else 0.0,
        })
    return sorted(stats, key=lambda s: s["total_hours"], reverse=True)


async def _sum_by_case(db: AsyncSession, column, case_col, case_ids, *criteria) -> dict:
    result = await db.execute(
        select(case_col, func.coalesce(func.sum(column), 0)).where(case_col.in_(case_ids), *criteria).group_by(case_col)
    )
    return {cid: int(total) for cid, total in result.all()}


async def _count_by_case(db: AsyncSession, id_col, case_col, case_ids, *criteria) -> dict:
    result = await db.execute(
        select(case_col, func.count(id_col)).where(case_col.in_(case_ids), *criteria).group_by(case_col)
    )
    return dict(result.all())


async def get_case_analytics(
    db: AsyncSession,
    user: User,
    start_date: date,
    end_date: date,
    case_id: Optional[uuid.UUID] = None,
) -> list[dict]:
    since, until = _day_bounds(start_date, end_date)
    query = select(Case).where(visible_cases_clause(user), Case.created_at >= since, Case.created_at <= until)
    if case_id:
        query = query.where(Case.id == case_id)
    cases = (await db.execute(query.order_by(Case.created_at.desc()))).scalars().all()
    if not cases:
        return []
    ids = [c.id for c in cases]

    minutes = await _sum_by_case(db, TimeEntry.duration_minutes, TimeEntry.case_id, ids)
    expenses = await _sum_by_case(db, Expense.amount_cents, Expense.case_id, ids)
    invoiced = await _sum_by_case(db, Invoice.total_cents, Invoice.case_id, ids)
    paid_rows = await db.execute(
        select(Invoice.case_id, func.coalesce(func.sum(Payment.amount_cents), 0))
        .join(Payment, Payment.invoice_id == Invoice.id)
        .where(Invoice.case_id.in_(ids))
        .group_by(Invoice.case_id)
    )
    paid = {cid: int(total) for cid, total in paid_rows.all()}
    total_tasks = await _count_by_case(db, Task.id, Task.case_id, ids)
    done_tasks = await _count_by_case(db, Task.id, Task.case_id, ids, Task.status == TaskStatus.done)
    documents = await _count_by_case(db, Document.id, Document.case_id, ids)

    report = []
    for c in cases:
        case_invoiced = invoiced.get(c.id, 0)
        case_paid = paid.get(c.id, 0)
        report.append({
            "case_id": c.id,
            "case_number": c.case_number,
            "case_name": c.case_name,
            "status": c.status,
            "practice_area": c.practice_area,
            "metrics": {
                "total_hours": round(minutes.get(c.id, 0) / 60, 2),
                "total_expenses_cents": expenses.get(c.id, 0),
                "total_invoiced_cents": case_invoiced,
                "total_paid_cents": case_paid,
                "outstanding_cents": case_invoiced - case_paid,
                "completed_tasks": done_tasks.get(c.id, 0),
                "total_tasks": total_tasks.get(c.id, 0),
                "document_count": documents.get(c.id, 0),
            },
        })
    return report
