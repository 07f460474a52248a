import json
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User, UserRole
from caseace.auth.schemas import UserResponse
from caseace.auth.service import create_audit_log
from caseace.common.pagination import PaginatedResponse
from caseace.database import get_db
from caseace.dependencies import require_roles
from caseace.users.schemas import AuditLogResponse, ChainVerification, UserRelatedRecords, UserUpdate
from caseace.users.service import (
    count_related_records,
    delete_user,
    get_audit_logs,
    get_user,
    get_users,
    update_user,
    verify_audit_chain,
)

router = APIRouter()

PartnerUser = Annotated[User, Depends(require_roles("partner"))]


@router.get("", response_model=PaginatedResponse)
async def list_users(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: PartnerUser,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
):
    users, total = await get_users(db, page, page_size, role, search)
    items = [UserResponse.model_validate(u).model_dump() for u in users]
    return PaginatedResponse.create(items=items, total=total, page=page, page_size=page_size)


# ── Audit trail ───────────────────────────────────────────────────────


@router.get("/audit-logs", response_model=PaginatedResponse)
async def list_audit_logs(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: PartnerUser,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None,
):
    logs, total = await get_audit_logs(db, page, page_size, entity_type, entity_id, user_id)
    items = [AuditLogResponse.model_validate(log).model_dump() for log in logs]
    return PaginatedResponse.create(items=items, total=total, page=page, page_size=page_size)


@router.get("/audit-logs/verify-chain", response_model=ChainVerification)
async def verify_chain_integrity(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: PartnerUser,
):
    return await verify_audit_chain(db)


# ── Single user ───────────────────────────────────────────────────────


@router.patch("/{user_id}", response_model=UserResponse)
async def update_existing_user(
    user_id: uuid.UUID,
    data: UserUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: PartnerUser,
):
    user = await get_user(db, user_id)
    old_role = user.role
    updated = await update_user(db, user, data)
    changes = data.model_dump(exclude_unset=True)
    action = "role_change" if updated.role != old_role else "update"
    if action == "role_change":
        changes["role"] = {"old": old_role.value, "new": updated.role.value}
    await create_audit_log(
        db, current_user.id, "user", str(user_id), action,
        changes_json=json.dumps(changes, default=str),
        ip_address=request.client.host if request.client else None,
    )
    return updated


@router.get("/{user_id}/related", response_model=UserRelatedRecords)
async def user_related_records(
    user_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: PartnerUser,
):
    user = await get_user(db, user_id)
    related = await count_related_records(db, user.id)
    return {
        "user_id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "related_records": related,
        "can_delete": related.total() == 0,
    }


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_existing_user(
    user_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: PartnerUser,
):
    user = await get_user(db, user_id)
    email = user.email
    await delete_user(db, user, current_user)
    await create_audit_log(
        db, current_user.id, "user", str(user_id), "delete",
        changes_json=json.dumps({"email": email}),
        ip_address=request.client.host if request.client else None,
    )
