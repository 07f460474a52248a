import json
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User
from caseace.auth.service import create_audit_log
from caseace.cases.access import can_view_case
from caseace.common.pagination import PaginatedResponse
from caseace.database import get_db
from caseace.dependencies import STAFF_ROLES, get_current_user, require_roles
from caseace.tasks.models import TaskStatus
from caseace.tasks.schemas import CaseTaskCreate, TaskCreate, TaskResponse, TaskUpdate
from caseace.tasks.service import create_task, delete_task, get_case_tasks, get_task, get_tasks, update_task

router = APIRouter()
case_router = APIRouter()


async def _audit_task(db: AsyncSession, user: User, request: Request, task_id, action: str, changes: Optional[dict] = None):
    await create_audit_log(
        db, user.id, "task", str(task_id), action,
        changes_json=json.dumps(changes, default=str) if changes is not None else None,
        ip_address=request.client.host if request.client else None,
    )


# ── Global task list ──────────────────────────────────────────────────


@router.get("", response_model=PaginatedResponse)
async def list_tasks(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles(*STAFF_ROLES))],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=25, ge=1, le=100),
    task_status: Optional[TaskStatus] = Query(default=None, alias="status"),
    case_id: Optional[uuid.UUID] = None,
):
    tasks, total = await get_tasks(db, current_user, page, page_size, task_status, case_id)
    items = [TaskResponse.model_validate(t).model_dump() for t in tasks]
    return PaginatedResponse.create(items=items, total=total, page=page, page_size=page_size)


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_new_task(
    data: TaskCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles(*STAFF_ROLES))],
):
    task = await create_task(db, data, current_user)
    await _audit_task(db, current_user, request, task.id, "create", data.model_dump())
    return task


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_existing_task(
    task_id: uuid.UUID,
    data: TaskUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles(*STAFF_ROLES))],
):
    task = await get_task(db, task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    updated = await update_task(db, task, data, current_user)
    await _audit_task(db, current_user, request, task_id, "update", data.model_dump(exclude_unset=True))
    return updated


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_existing_task(
    task_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles("partner"))],
):
    task = await get_task(db, task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    await delete_task(db, task)
    await _audit_task(db, current_user, request, task_id, "delete")


# ── Tasks nested under a case ─────────────────────────────────────────


@case_router.get("/{case_id}/tasks", response_model=list[TaskResponse])
async def list_case_tasks(
    case_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    if not await can_view_case(db, current_user, case_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    return await get_case_tasks(db, case_id)


@case_router.post("/{case_id}/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_case_task(
    case_id: uuid.UUID,
    data: CaseTaskCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles("partner", "associate"))],
):
    task = await create_task(db, TaskCreate(case_id=case_id, **data.model_dump()), current_user)
    await _audit_task(db, current_user, request, task.id, "create", data.model_dump())
    return task
