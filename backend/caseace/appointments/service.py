import uuid
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.appointments.models import Appointment, AppointmentAttendee, AttendeeStatus
from caseace.appointments.schemas import AppointmentCreate, AppointmentUpdate, ConvertToTimeEntry
from caseace.auth.models import User
from caseace.cases.models import Case
from caseace.common.base_models import as_aware
from caseace.notifications.models import NotificationType
from caseace.notifications.service import notify_users
from caseace.time_tracking.models import TimeEntry, TimeEntryStatus
from caseace.time_tracking.service import minutes_between


async def _check_attendees(db: AsyncSession, user_ids: list[uuid.UUID]) -> None:
    if not user_ids:
        return
    found = (await db.execute(select(func.count(User.id)).where(User.id.in_(user_ids)))).scalar_one()
    if found != len(user_ids):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="One or more attendees not found")


def _attendee_status(user_id: uuid.UUID, creator_id: uuid.UUID) -> AttendeeStatus:
    return AttendeeStatus.accepted if user_id == creator_id else AttendeeStatus.tentative


async def create_appointment(db: AsyncSession, data: AppointmentCreate, creator: User) -> Appointment:
    attendee_ids = list(dict.fromkeys([creator.id, *data.attendee_ids]))
    await _check_attendees(db, attendee_ids)
    if data.case_id is not None and await db.get(Case, data.case_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")

    appointment = Appointment(**data.model_dump(exclude={"attendee_ids"}), created_by_id=creator.id)
    appointment.attendees = [
        AppointmentAttendee(user_id=uid, status=_attendee_status(uid, creator.id)) for uid in attendee_ids
    ]
    db.add(appointment)
    await db.flush()

    await notify_users(
        db, [uid for uid in attendee_ids if uid != creator.id], NotificationType.appointment,
        "New appointment",
        f'{creator.name} invited you to "{appointment.title}" on {appointment.start_time:%Y-%m-%d %H:%M}',
        case_id=appointment.case_id,
    )

    await db.refresh(appointment)
    return appointment


async def get_appointments_for_user(db: AsyncSession, user_id: uuid.UUID) -> list[Appointment]:
    attending = select(AppointmentAttendee.appointment_id).where(AppointmentAttendee.user_id == user_id)
    result = await db.execute(
        select(Appointment).where(Appointment.id.in_(attending)).order_by(Appointment.start_time.asc())
    )
    return result.scalars().all()


async def get_appointment(db: AsyncSession, appointment_id: uuid.UUID) -> Optional[Appointment]:
    result = await db.execute(select(Appointment).where(Appointment.id == appointment_id))
    return result.scalar_one_or_none()


async def update_appointment(db: AsyncSession, appointment: Appointment, data: AppointmentUpdate) -> Appointment:
    changes = data.model_dump(exclude_unset=True, exclude={"attendee_ids"})
    for field, value in changes.items():
        if value is None and field in ("title", "start_time", "end_time"):
            continue
        setattr(appointment, field, value)

    if as_aware(appointment.end_time) <= as_aware(appointment.start_time):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_time must be after start_time")

    if data.attendee_ids:
        wanted = list(dict.fromkeys([appointment.created_by_id, *data.attendee_ids]))
        await _check_attendees(db, wanted)
        for attendee in list(appointment.attendees):
            if attendee.user_id not in wanted:
                appointment.attendees.remove(attendee)
        present = {a.user_id for a in appointment.attendees}
        for uid in wanted:
            if uid not in present:
                appointment.attendees.append(
                    AppointmentAttendee(user_id=uid, status=_attendee_status(uid, appointment.created_by_id))
                )

    await db.flush()
    await db.refresh(appointment)
    return appointment


async def delete_appointment(db: AsyncSession, appointment: Appointment) -> None:
    await db.delete(appointment)
    await db.flush()


async def convert_to_time_entry(
    db: AsyncSession, appointment: Appointment, user_id: uuid.UUID, data: ConvertToTimeEntry
) -> TimeEntry:
    """Log the meeting as a draft, billable time entry for one of its attendees."""
    if not any(a.user_id == user_id for a in appointment.attendees):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You are not an attendee of this appointment",
        )

    entry = TimeEntry(
        user_id=user_id,
        case_id=appointment.case_id,
        description=data.description or f"Meeting: {appointment.title}",
        type=data.type,
        status=TimeEntryStatus.draft,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        duration_minutes=minutes_between(appointment.start_time, appointment.end_time),
        rate_cents=data.rate_cents,
        billable=True,
    )
    entry.recompute_billable_amount()
    db.add(entry)
    await db.flush()
    await db.refresh(entry)
    return entry
