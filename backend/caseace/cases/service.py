import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.appointments.models import Appointment, AppointmentAttendee
from caseace.auth.models import User, UserRole
from caseace.auth.service import generate_password, get_user_by_email, hash_password
from caseace.billing.models import Expense, Invoice, Payment
from caseace.cases.access import visible_cases_clause
from caseace.cases.models import Case, CaseAssignment, CaseStatus
from caseace.cases.schemas import CaseCreate, CaseUpdate, ClientLoginInfo
from caseace.communications.models import DocumentRequest, Message
from caseace.documents.models import Document
from caseace.notifications.models import NotificationType
from caseace.notifications.service import notify_users
from caseace.tasks.models import Task
from caseace.time_tracking.models import ActiveTimer, InvoiceEntryStatus, TimeEntry

logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES = (UserRole.associate, UserRole.paralegal)


async def generate_case_number(db: AsyncSession) -> str:
    now = datetime.now(timezone.utc)
    prefix = f"CASE-{now.year}-{now.month:02d}-"
    result = await db.execute(
        select(Case.case_number).where(Case.case_number.startswith(prefix)).order_by(Case.case_number.desc()).limit(1)
    )
    last = result.scalar_one_or_none()
    next_number = 1
    if last:
        try:
            next_number = int(last.rsplit("-", 1)[-1]) + 1
        except ValueError:
            next_number = 1
    return f"{prefix}{next_number:04d}"


async def _validate_assignable_users(db: AsyncSession, user_ids: list[uuid.UUID]) -> list[uuid.UUID]:
    unique_ids = list(dict.fromkeys(user_ids))
    if not unique_ids:
        return unique_ids
    result = await db.execute(select(func.count(User.id)).where(User.id.in_(unique_ids), User.role.in_(ASSIGNABLE_ROLES)))
    if result.scalar_one() != len(unique_ids):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Some user IDs are invalid or not staff members",
        )
    return unique_ids


async def _resolve_client(db: AsyncSession, data: CaseCreate) -> tuple[User, Optional[ClientLoginInfo]]:
    has_inline = data.client_name is not None or data.client_email is not None
    if data.client_id is not None and has_inline:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot provide both client_id and client information",
        )

    if data.client_id is not None:
        client = await db.get(User, data.client_id)
        if client is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
        return client, None

    if not (data.client_name and data.client_email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either client_id or client information (name and email) must be provided",
        )

    if await get_user_by_email(db, data.client_email) is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'User with email "{data.client_email}" already exists',
        )

    password = data.client_password or generate_password()
    client = User(
        email=data.client_email,
        name=data.client_name,
        phone=data.client_phone,
        address=data.client_address,
        password_hash=hash_password(password),
        role=UserRole.client,
    )
    db.add(client)
    await db.flush()
    logger.info("Created client account %s inline with new case", client.email)
    return client, ClientLoginInfo(email=client.email, password=password)


async def create_case(
    db: AsyncSession, data: CaseCreate, created_by: uuid.UUID
) -> tuple[Case, Optional[ClientLoginInfo]]:
    """Create a case, its client (when given inline) and initial assignments."""
    assignee_ids = await _validate_assignable_users(db, data.assigned_user_ids)
    client, login_info = await _resolve_client(db, data)

    case = Case(
        case_number=await generate_case_number(db),
        case_name=data.case_name,
        description=data.description,
        practice_area=data.practice_area,
        status=data.status,
        client_id=client.id,
        created_by_id=created_by,
    )
    db.add(case)
    await db.flush()

    for user_id in assignee_ids:
        db.add(CaseAssignment(case_id=case.id, user_id=user_id))
    await db.flush()

    if assignee_ids:
        await notify_users(
            db, assignee_ids, NotificationType.case_assigned,
            "New case assignment",
            f'You have been assigned to case "{case.case_name}" ({case.case_number})',
            case_id=case.id,
        )

    await db.refresh(case)
    return case, login_info


async def get_cases(
    db: AsyncSession,
    user: User,
    page: int = 1,
    page_size: int = 25,
    search: Optional[str] = None,
    status: Optional[CaseStatus] = None,
) -> tuple[list[Case], int]:
    visible = visible_cases_clause(user)
    query = select(Case).where(visible)
    count_query = select(func.count(Case.id)).where(visible)

    if search:
        search_filter = or_(
            Case.case_name.ilike(f"%{search}%"),
            Case.case_number.ilike(f"%{search}%"),
            Case.description.ilike(f"%{search}%"),
        )
        query = query.where(search_filter)
        count_query = count_query.where(search_filter)

    if status:
        query = query.where(Case.status == status)
        count_query = count_query.where(Case.status == status)

    total = (await db.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    result = await db.execute(query.order_by(Case.created_at.desc(), Case.case_number.desc()).offset(offset).limit(page_size))
    return result.scalars().all(), total


async def get_case(db: AsyncSession, case_id: uuid.UUID) -> Optional[Case]:
    result = await db.execute(select(Case).where(Case.id == case_id))
    return result.scalar_one_or_none()


async def get_visible_case(db: AsyncSession, user: User, case_id: uuid.UUID) -> Optional[Case]:
    """The case, or None when it does not exist or ``user`` may not see it."""
    result = await db.execute(select(Case).where(Case.id == case_id, visible_cases_clause(user)))
    return result.scalar_one_or_none()


async def update_case(db: AsyncSession, case: Case, data: CaseUpdate) -> Case:
    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(case, field, value)
    if "status" in changes:
        case.closed_at = datetime.now(timezone.utc) if case.status == CaseStatus.closed else None
    await db.flush()
    await db.refresh(case)
    return case


async def close_case(db: AsyncSession, case: Case) -> Case:
    case.status = CaseStatus.closed
    case.closed_at = datetime.now(timezone.utc)
    await db.flush()
    await db.refresh(case)
    return case


async def assign_users(db: AsyncSession, case: Case, user_ids: list[uuid.UUID]) -> list[CaseAssignment]:
    """Replace the case's assignment set with ``user_ids``."""
    assignee_ids = await _validate_assignable_users(db, user_ids)
    previous = {a.user_id for a in case.assignments}

    await db.execute(delete(CaseAssignment).where(CaseAssignment.case_id == case.id))
    for user_id in assignee_ids:
        db.add(CaseAssignment(case_id=case.id, user_id=user_id))
    await db.flush()

    newly_assigned = [uid for uid in assignee_ids if uid not in previous]
    if newly_assigned:
        await notify_users(
            db, newly_assigned, NotificationType.case_assigned,
            "New case assignment",
            f'You have been assigned to case "{case.case_name}" ({case.case_number})',
            case_id=case.id,
        )

    await db.refresh(case)
    return case.assignments


async def get_assignments(db: AsyncSession, case_id: uuid.UUID) -> list[CaseAssignment]:
    result = await db.execute(
        select(CaseAssignment).where(CaseAssignment.case_id == case_id).order_by(CaseAssignment.assigned_at)
    )
    return result.scalars().all()


async def delete_case(db: AsyncSession, case: Case) -> list[str]:
    """Delete a case with everything hanging off it. Returns storage keys of removed documents."""
    case_id, case_number = case.id, case.case_number
    invoice_ids = select(Invoice.id).where(Invoice.case_id == case_id)
    task_ids = select(Task.id).where(Task.case_id == case_id)
    appointment_ids = select(Appointment.id).where(Appointment.case_id == case_id)

    storage_keys = (await db.execute(select(Document.storage_key).where(Document.case_id == case_id))).scalars().all()

    # Work from other cases that ended up on this case's invoices goes back to unbilled
    await db.execute(
        update(TimeEntry)
        .where(TimeEntry.invoice_id.in_(invoice_ids), TimeEntry.case_id != case_id)
        .values(invoice_id=None, invoice_status=InvoiceEntryStatus.unbilled)
    )
    await db.execute(update(TimeEntry).where(TimeEntry.task_id.in_(task_ids)).values(task_id=None))

    await db.execute(delete(Payment).where(Payment.invoice_id.in_(invoice_ids)))
    await db.execute(delete(TimeEntry).where(TimeEntry.case_id == case_id))
    await db.execute(delete(Expense).where(Expense.case_id == case_id))
    await db.execute(delete(ActiveTimer).where(ActiveTimer.case_id == case_id))
    await db.execute(delete(Invoice).where(Invoice.case_id == case_id))
    await db.execute(delete(Task).where(Task.case_id == case_id))
    await db.execute(delete(AppointmentAttendee).where(AppointmentAttendee.appointment_id.in_(appointment_ids)))
    await db.execute(delete(Appointment).where(Appointment.case_id == case_id))
    await db.execute(delete(Document).where(Document.case_id == case_id))
    await db.execute(delete(Message).where(Message.case_id == case_id))
    await db.execute(delete(DocumentRequest).where(DocumentRequest.case_id == case_id))
    await db.execute(delete(CaseAssignment).where(CaseAssignment.case_id == case_id))
    await db.execute(delete(Case).where(Case.id == case_id))
    await db.flush()

    logger.info("Deleted case %s (%s) with %d documents", case_number, case_id, len(storage_keys))
    return storage_keys
