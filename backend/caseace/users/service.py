import logging
import uuid
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.appointments.models import Appointment, AppointmentAttendee
from caseace.auth.models import AuditLog, User, UserRole
from caseace.billing.models import Expense, Invoice, Payment
from caseace.cases.models import Case, CaseAssignment
from caseace.common.audit import verify_chain
from caseace.common.pagination import page_offset
from caseace.communications.models import DocumentRequest, Message
from caseace.documents.models import Document
from caseace.notifications.models import Notification
from caseace.tasks.models import Task
from caseace.time_tracking.models import ActiveTimer, TimeEntry
from caseace.users.schemas import RelatedCounts, UserUpdate

logger = logging.getLogger(__name__)

DELETE_SUGGESTIONS = [
    "Reassign cases to another user",
    "Reassign or complete tasks",
    "Archive or reassign time entries",
    "Transfer invoices to another client",
    "Reassign appointments to another user",
    "Transfer document ownership",
]


async def get_users(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 50,
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
) -> tuple[list[User], int]:
    query = select(User)
    count_query = select(func.count(User.id))

    if role:
        query = query.where(User.role == role)
        count_query = count_query.where(User.role == role)
    if search:
        pattern = f"%{search}%"
        match = or_(User.name.ilike(pattern), User.email.ilike(pattern))
        query = query.where(match)
        count_query = count_query.where(match)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(query.order_by(User.created_at.desc()).offset(page_offset(page, page_size)).limit(page_size))
    return result.scalars().all(), total


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


async def update_user(db: AsyncSession, user: User, data: UserUpdate) -> User:
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field in ("name", "role", "is_active"):
            continue
        setattr(user, field, value)
    await db.flush()
    await db.refresh(user)
    return user


async def _count(db: AsyncSession, model, *criteria) -> int:
    return (await db.execute(select(func.count(model.id)).where(*criteria))).scalar_one()


async def count_related_records(db: AsyncSession, user_id: uuid.UUID) -> RelatedCounts:
    """Rows that point at the user and would block deleting them."""
    return RelatedCounts(
        cases=await _count(db, Case, or_(Case.client_id == user_id, Case.created_by_id == user_id)),
        tasks=await _count(db, Task, or_(Task.assigned_to_id == user_id, Task.assigned_by_id == user_id)),
        time_entries=await _count(db, TimeEntry, TimeEntry.user_id == user_id),
        invoices=await _count(db, Invoice, Invoice.client_id == user_id),
        appointments=await _count(db, Appointment, Appointment.created_by_id == user_id),
        documents=await _count(db, Document, Document.uploaded_by_id == user_id),
        expenses=await _count(db, Expense, Expense.user_id == user_id),
        payments=await _count(db, Payment, Payment.recorded_by_id == user_id),
        messages=await _count(db, Message, Message.sender_id == user_id),
        document_requests=await _count(db, DocumentRequest, DocumentRequest.requested_by_id == user_id),
    )


async def delete_user(db: AsyncSession, user: User, acting_user: User) -> None:
    if user.id == acting_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")

    related = await count_related_records(db, user.id)
    if related.total() > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": (
                    f'Cannot delete user "{user.name or user.email}". '
                    "They have associated records that must be handled first."
                ),
                "user": {"id": str(user.id), "name": user.name, "email": user.email, "role": user.role.value},
                "related_records": related.model_dump(),
                "suggestions": DELETE_SUGGESTIONS,
            },
        )

    # Links that carry no history of their own go with the user
    await db.execute(delete(Notification).where(Notification.recipient_id == user.id))
    await db.execute(delete(CaseAssignment).where(CaseAssignment.user_id == user.id))
    await db.execute(delete(AppointmentAttendee).where(AppointmentAttendee.user_id == user.id))
    await db.execute(delete(ActiveTimer).where(ActiveTimer.user_id == user.id))
    await db.delete(user)
    await db.flush()
    logger.info("Deleted user %s", user.email)


# ── Audit trail ───────────────────────────────────────────────────────


async def get_audit_logs(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 50,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None,
) -> tuple[list[AuditLog], int]:
    query = select(AuditLog)
    count_query = select(func.count(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)
        count_query = count_query.where(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)
        count_query = count_query.where(AuditLog.entity_id == entity_id)
    if user_id:
        query = query.where(AuditLog.user_id == user_id)
        count_query = count_query.where(AuditLog.user_id == user_id)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(query.order_by(AuditLog.seq.desc()).offset(page_offset(page, page_size)).limit(page_size))
    return result.scalars().all(), total


async def verify_audit_chain(db: AsyncSession) -> dict:
    entries = (await db.execute(select(AuditLog).order_by(AuditLog.seq.asc()))).scalars().all()
    broken = verify_chain(entries)
    if broken is not None:
        logger.warning("Audit chain broken at entry %s", broken)
    return {"valid": broken is None, "entries_checked": len(entries), "first_broken_id": broken}
