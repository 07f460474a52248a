import json
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.appointments.schemas import AppointmentCreate, AppointmentResponse, AppointmentUpdate, ConvertToTimeEntry
from caseace.appointments.service import (
    convert_to_time_entry,
    create_appointment,
    delete_appointment,
    get_appointment,
    get_appointments_for_user,
    update_appointment,
)
from caseace.auth.models import User
from caseace.auth.service import create_audit_log
from caseace.database import get_db
from caseace.dependencies import STAFF_ROLES, get_current_user, require_roles
from caseace.time_tracking.schemas import TimeEntryResponse

router = APIRouter()


async def _get_appointment_or_404(db: AsyncSession, appointment_id: uuid.UUID):
    appointment = await get_appointment(db, appointment_id)
    if appointment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    return appointment


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_new_appointment(
    data: AppointmentCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles(*STAFF_ROLES))],
):
    appointment = await create_appointment(db, data, current_user)
    await create_audit_log(
        db, current_user.id, "appointment", str(appointment.id), "create",
        changes_json=json.dumps(data.model_dump(), default=str),
        ip_address=request.client.host if request.client else None,
    )
    return appointment


@router.get("", response_model=list[AppointmentResponse])
async def list_my_appointments(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    return await get_appointments_for_user(db, current_user.id)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_single_appointment(
    appointment_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    appointment = await _get_appointment_or_404(db, appointment_id)
    if not current_user.is_staff and not any(a.user_id == current_user.id for a in appointment.attendees):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    return appointment


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_existing_appointment(
    appointment_id: uuid.UUID,
    data: AppointmentUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles(*STAFF_ROLES))],
):
    appointment = await _get_appointment_or_404(db, appointment_id)
    updated = await update_appointment(db, appointment, data)
    await create_audit_log(
        db, current_user.id, "appointment", str(appointment_id), "update",
        changes_json=json.dumps(data.model_dump(exclude_unset=True), default=str),
        ip_address=request.client.host if request.client else None,
    )
    return updated


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_existing_appointment(
    appointment_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles(*STAFF_ROLES))],
):
    appointment = await _get_appointment_or_404(db, appointment_id)
    await delete_appointment(db, appointment)
    await create_audit_log(
        db, current_user.id, "appointment", str(appointment_id), "delete",
        ip_address=request.client.host if request.client else None,
    )


@router.post(
    "/{appointment_id}/convert-to-time-entry",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def convert_appointment_to_time_entry(
    appointment_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles(*STAFF_ROLES))],
    data: Optional[ConvertToTimeEntry] = None,
):
    appointment = await _get_appointment_or_404(db, appointment_id)
    entry = await convert_to_time_entry(db, appointment, current_user.id, data or ConvertToTimeEntry())
    await create_audit_log(
        db, current_user.id, "time_entry", str(entry.id), "create",
        changes_json=json.dumps({"appointment_id": str(appointment_id)}),
        ip_address=request.client.host if request.client else None,
    )
    return entry
