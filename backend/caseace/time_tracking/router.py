import json
import uuid
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User
from caseace.auth.service import create_audit_log
from caseace.common.pagination import PaginatedResponse
from caseace.database import get_db
from caseace.dependencies import STAFF_ROLES, require_roles
from caseace.time_tracking.models import InvoiceEntryStatus
from caseace.time_tracking.schemas import (
    ActiveTimerResponse,
    BillingSummary,
    InvoiceStatusUpdate,
    TimeEntryCreate,
    TimeEntryResponse,
    TimeEntryUpdate,
    TimeReport,
    TimerStart,
    TimerStop,
)
from caseace.time_tracking.service import (
    cancel_timer,
    create_time_entry,
    delete_time_entry,
    get_active_timer,
    get_billing_summary,
    get_own_time_entry,
    get_time_entries,
    get_time_report,
    get_unbilled_entries,
    start_timer,
    stop_timer,
    update_invoice_status,
    update_time_entry,
)

router = APIRouter()

StaffUser = Annotated[User, Depends(require_roles(*STAFF_ROLES))]
PartnerUser = Annotated[User, Depends(require_roles("partner"))]


async def _audit_entry(db: AsyncSession, user: User, request: Request, entry_id, action: str, changes: Optional[dict] = None):
    await create_audit_log(
        db, user.id, "time_entry", str(entry_id), action,
        changes_json=json.dumps(changes, default=str) if changes is not None else None,
        ip_address=request.client.host if request.client else None,
    )


# ── Entries ───────────────────────────────────────────────────────────


@router.post("", response_model=TimeEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_new_time_entry(
    data: TimeEntryCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
):
    entry = await create_time_entry(db, data, current_user.id)
    await _audit_entry(db, current_user, request, entry.id, "create", data.model_dump())
    return entry


@router.get("", response_model=PaginatedResponse)
async def list_my_time_entries(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=25, ge=1, le=100),
    case_id: Optional[uuid.UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    invoice_status: Optional[InvoiceEntryStatus] = None,
):
    entries, total = await get_time_entries(
        db, page, page_size, current_user.id, case_id, start_date, end_date, invoice_status
    )
    items = [TimeEntryResponse.model_validate(e).model_dump() for e in entries]
    return PaginatedResponse.create(items=items, total=total, page=page, page_size=page_size)


@router.get("/all-staff", response_model=PaginatedResponse)
async def list_all_staff_time_entries(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: PartnerUser,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=25, ge=1, le=100),
    user_id: Optional[uuid.UUID] = None,
    case_id: Optional[uuid.UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    invoice_status: Optional[InvoiceEntryStatus] = None,
):
    entries, total = await get_time_entries(db, page, page_size, user_id, case_id, start_date, end_date, invoice_status)
    items = [TimeEntryResponse.model_validate(e).model_dump() for e in entries]
    return PaginatedResponse.create(items=items, total=total, page=page, page_size=page_size)


@router.get("/report", response_model=TimeReport)
async def time_report(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    case_id: Optional[uuid.UUID] = None,
):
    entries, summary = await get_time_report(db, current_user.id, start_date, end_date, case_id)
    return {"time_entries": entries, "summary": summary}


@router.get("/unbilled", response_model=list[TimeEntryResponse])
async def list_unbilled_entries(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
    client_id: Optional[uuid.UUID] = None,
    case_id: Optional[uuid.UUID] = None,
):
    return await get_unbilled_entries(db, current_user, client_id, case_id)


@router.get("/billing-summary", response_model=BillingSummary)
async def my_billing_summary(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
):
    return await get_billing_summary(db, current_user.id)


@router.get("/billing-summary/all-staff", response_model=BillingSummary)
async def all_staff_billing_summary(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: PartnerUser,
):
    return await get_billing_summary(db)


@router.patch("/invoice-status")
async def bulk_update_invoice_status(
    data: InvoiceStatusUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: PartnerUser,
):
    updated = await update_invoice_status(db, data)
    await create_audit_log(
        db, current_user.id, "time_entry", "bulk", "status_change",
        changes_json=json.dumps(data.model_dump(), default=str),
        ip_address=request.client.host if request.client else None,
    )
    return {"updated": updated}


# ── Timer ─────────────────────────────────────────────────────────────


@router.post("/timer/start", response_model=ActiveTimerResponse, status_code=status.HTTP_201_CREATED)
async def start_new_timer(
    data: TimerStart,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
):
    return await start_timer(db, data, current_user.id)


@router.post("/timer/stop", response_model=TimeEntryResponse)
async def stop_running_timer(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
    data: Optional[TimerStop] = None,
):
    entry = await stop_timer(db, data or TimerStop(), current_user.id)
    await _audit_entry(db, current_user, request, entry.id, "create", {"source": "timer"})
    return entry


@router.get("/timer/active", response_model=Optional[ActiveTimerResponse])
async def active_timer(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
):
    return await get_active_timer(db, current_user.id)


@router.delete("/timer/cancel", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_running_timer(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
):
    await cancel_timer(db, current_user.id)


# ── Single entry ──────────────────────────────────────────────────────


@router.get("/{entry_id}", response_model=TimeEntryResponse)
async def get_single_time_entry(
    entry_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
):
    return await get_own_time_entry(db, entry_id, current_user)


@router.patch("/{entry_id}", response_model=TimeEntryResponse)
async def update_existing_time_entry(
    entry_id: uuid.UUID,
    data: TimeEntryUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
):
    entry = await get_own_time_entry(db, entry_id, current_user)
    updated = await update_time_entry(db, entry, data)
    await _audit_entry(db, current_user, request, entry_id, "update", data.model_dump(exclude_unset=True))
    return updated


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_existing_time_entry(
    entry_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
):
    entry = await get_own_time_entry(db, entry_id, current_user)
    await delete_time_entry(db, entry)
    await _audit_entry(db, current_user, request, entry_id, "delete")
