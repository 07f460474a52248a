import uuid
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User, UserRole
from caseace.cases.models import Case
from caseace.notifications.models import NotificationPriority, NotificationType
from caseace.notifications.service import create_notification
from caseace.tasks.models import Task, TaskStatus
from caseace.tasks.schemas import TaskCreate, TaskUpdate
from caseace.time_tracking.models import ActiveTimer, TimeEntry

# ── Task CRUD ─────────────────────────────────────────────────────────


async def _require_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignee not found")
    return user


async def create_task(db: AsyncSession, data: TaskCreate, assigned_by: User) -> Task:
    case = await db.get(Case, data.case_id)
    if case is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    assignee = await _require_user(db, data.assigned_to_id)

    task = Task(
        case_id=data.case_id,
        title=data.title,
        description=data.description,
        deadline=data.deadline,
        status=data.status,
        assigned_to_id=assignee.id,
        assigned_by_id=assigned_by.id,
    )
    db.add(task)
    await db.flush()

    if assignee.id != assigned_by.id:
        await create_notification(
            db, assignee.id, NotificationType.task_assigned,
            "New task assigned",
            f'{assigned_by.name} assigned you "{task.title}" on case {case.case_number}',
            priority=NotificationPriority.high if task.deadline else NotificationPriority.medium,
            case_id=case.id,
            task_id=task.id,
        )

    await db.refresh(task)
    return task


async def get_tasks(
    db: AsyncSession,
    user: User,
    page: int = 1,
    page_size: int = 25,
    status: Optional[TaskStatus] = None,
    case_id: Optional[uuid.UUID] = None,
) -> tuple[list[Task], int]:
    """Partners see every task; everyone else sees tasks assigned to or by them."""
    query = select(Task)
    count_query = select(func.count(Task.id))

    if user.role != UserRole.partner:
        mine = or_(Task.assigned_to_id == user.id, Task.assigned_by_id == user.id)
        query = query.where(mine)
        count_query = count_query.where(mine)

    if status:
        query = query.where(Task.status == status)
        count_query = count_query.where(Task.status == status)

    if case_id:
        query = query.where(Task.case_id == case_id)
        count_query = count_query.where(Task.case_id == case_id)

    total = (await db.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    result = await db.execute(query.order_by(Task.created_at.desc()).offset(offset).limit(page_size))
    return result.scalars().all(), total


async def get_case_tasks(db: AsyncSession, case_id: uuid.UUID) -> list[Task]:
    result = await db.execute(
        select(Task).where(Task.case_id == case_id).order_by(Task.deadline.asc().nulls_last(), Task.created_at.asc())
    )
    return result.scalars().all()


async def get_task(db: AsyncSession, task_id: uuid.UUID) -> Optional[Task]:
    result = await db.execute(select(Task).where(Task.id == task_id))
    return result.scalar_one_or_none()


async def update_task(db: AsyncSession, task: Task, data: TaskUpdate, user: User) -> Task:
    changes = data.model_dump(exclude_unset=True)

    if changes.get("status") is not None and task.assigned_to_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only update status of tasks assigned to you",
        )

    previous_assignee = task.assigned_to_id
    if changes.get("assigned_to_id") is not None:
        await _require_user(db, changes["assigned_to_id"])

    for field, value in changes.items():
        if value is None and field in ("status", "assigned_to_id", "title"):
            continue
        setattr(task, field, value)
    await db.flush()

    if task.assigned_to_id != previous_assignee:
        await create_notification(
            db, task.assigned_to_id, NotificationType.task_assigned,
            "New task assigned",
            f'{user.name} assigned you "{task.title}"',
            case_id=task.case_id,
            task_id=task.id,
        )
    elif "status" in changes and task.assigned_by_id != user.id:
        await create_notification(
            db, task.assigned_by_id, NotificationType.task_updated,
            "Task status updated",
            f'{user.name} moved "{task.title}" to {task.status.value.replace("_", " ")}',
            case_id=task.case_id,
            task_id=task.id,
        )

    await db.refresh(task)
    return task


async def delete_task(db: AsyncSession, task: Task) -> None:
    await db.execute(update(TimeEntry).where(TimeEntry.task_id == task.id).values(task_id=None))
    await db.execute(update(ActiveTimer).where(ActiveTimer.task_id == task.id).values(task_id=None))
    await db.delete(task)
    await db.flush()
