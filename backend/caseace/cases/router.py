import json
import logging
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User
from caseace.auth.service import create_audit_log
from caseace.cases.models import CaseStatus
from caseace.cases.schemas import (
    AssignUsersRequest,
    CaseAssignmentResponse,
    CaseCreate,
    CaseCreateResponse,
    CaseResponse,
    CaseUpdate,
)
from caseace.cases.service import (
    assign_users,
    close_case,
    create_case,
    delete_case,
    get_assignments,
    get_cases,
    get_visible_case,
    update_case,
)
from caseace.common.pagination import PaginatedResponse
from caseace.database import get_db
from caseace.dependencies import get_current_user, require_roles
from caseace.documents.service import remove_stored_object
from caseace.emails.service import EmailDeliveryError, send_login_credentials

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_case_or_404(db: AsyncSession, user: User, case_id: uuid.UUID):
    case = await get_visible_case(db, user, case_id)
    if case is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    return case


@router.get("", response_model=PaginatedResponse)
async def list_cases(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=25, ge=1, le=100),
    search: Optional[str] = None,
    case_status: Optional[CaseStatus] = Query(default=None, alias="status"),
):
    cases, total = await get_cases(db, current_user, page, page_size, search, case_status)
    items = [CaseResponse.model_validate(c).model_dump() for c in cases]
    return PaginatedResponse.create(items=items, total=total, page=page, page_size=page_size)


@router.post("", response_model=CaseCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_new_case(
    data: CaseCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles("partner"))],
):
    case, login_info = await create_case(db, data, current_user.id)
    await create_audit_log(
        db, current_user.id, "case", str(case.id), "create",
        changes_json=json.dumps(data.model_dump(exclude={"client_password"}), default=str),
        ip_address=request.client.host if request.client else None,
    )

    if login_info is not None and data.send_credentials_email:
        try:
            await send_login_credentials(login_info.email, case.client.name, login_info.password, case.case_name)
        except EmailDeliveryError:
            logger.exception("Failed to send login credentials to %s", login_info.email)

    response = CaseCreateResponse.model_validate(case)
    response.client_login_info = login_info
    return response


@router.get("/{case_id}", response_model=CaseResponse)
async def get_case_detail(
    case_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    return await _get_case_or_404(db, current_user, case_id)


@router.patch("/{case_id}", response_model=CaseResponse)
async def update_existing_case(
    case_id: uuid.UUID,
    data: CaseUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles("partner", "associate"))],
):
    case = await _get_case_or_404(db, current_user, case_id)
    updated = await update_case(db, case, data)
    await create_audit_log(
        db, current_user.id, "case", str(case_id), "update",
        changes_json=json.dumps(data.model_dump(exclude_unset=True), default=str),
        ip_address=request.client.host if request.client else None,
    )
    return updated


@router.patch("/{case_id}/close", response_model=CaseResponse)
async def close_existing_case(
    case_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles("partner", "associate"))],
):
    case = await _get_case_or_404(db, current_user, case_id)
    closed = await close_case(db, case)
    await create_audit_log(
        db, current_user.id, "case", str(case_id), "close",
        ip_address=request.client.host if request.client else None,
    )
    return closed


@router.post("/{case_id}/assign", response_model=list[CaseAssignmentResponse])
async def assign_case_users(
    case_id: uuid.UUID,
    data: AssignUsersRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles("partner"))],
):
    case = await _get_case_or_404(db, current_user, case_id)
    assignments = await assign_users(db, case, data.user_ids)
    await create_audit_log(
        db, current_user.id, "case", str(case_id), "assign",
        changes_json=json.dumps({"user_ids": data.user_ids}, default=str),
        ip_address=request.client.host if request.client else None,
    )
    return assignments


@router.get("/{case_id}/assignments", response_model=list[CaseAssignmentResponse])
async def list_case_assignments(
    case_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    await _get_case_or_404(db, current_user, case_id)
    return await get_assignments(db, case_id)


@router.delete("/{case_id}")
async def delete_existing_case(
    case_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles("partner"))],
):
    case = await _get_case_or_404(db, current_user, case_id)
    storage_keys = await delete_case(db, case)
    await create_audit_log(
        db, current_user.id, "case", str(case_id), "delete",
        ip_address=request.client.host if request.client else None,
    )
    for key in storage_keys:
        remove_stored_object(key)
    return {"message": "Case and all related data deleted", "deleted_case_id": str(case_id)}
