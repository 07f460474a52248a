import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User
from caseace.common.pagination import PaginatedResponse
from caseace.database import get_db
from caseace.dependencies import get_current_user
from caseace.notifications.schemas import NotificationResponse, UnreadCountResponse
from caseace.notifications.service import get_notifications, get_unread_count, mark_all_as_read, mark_as_read

router = APIRouter()


@router.get("", response_model=PaginatedResponse)
async def list_notifications(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    unread_only: bool = False,
):
    notifications, total = await get_notifications(db, current_user.id, page, page_size, unread_only)
    items = [NotificationResponse.model_validate(n).model_dump() for n in notifications]
    return PaginatedResponse.create(items=items, total=total, page=page, page_size=page_size)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    return UnreadCountResponse(count=await get_unread_count(db, current_user.id))


@router.patch("/read-all")
async def read_all(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    updated = await mark_all_as_read(db, current_user.id)
    return {"updated": updated}


@router.patch("/{notification_id}/read")
async def read_one(
    notification_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    if not await mark_as_read(db, notification_id, current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return {"updated": 1}
