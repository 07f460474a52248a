import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User, UserRole
from caseace.notifications.models import Notification, NotificationPriority, NotificationType

logger = logging.getLogger(__name__)


async def create_notification(
    db: AsyncSession,
    recipient_id: uuid.UUID,
    type: NotificationType,
    title: str,
    message: str,
    priority: NotificationPriority = NotificationPriority.medium,
    case_id: Optional[uuid.UUID] = None,
    task_id: Optional[uuid.UUID] = None,
) -> Notification:
    notification = Notification(
        recipient_id=recipient_id,
        type=type,
        title=title,
        message=message,
        priority=priority,
        case_id=case_id,
        task_id=task_id,
    )
    db.add(notification)
    await db.flush()
    return notification


async def notify_users(
    db: AsyncSession,
    recipient_ids: Iterable[uuid.UUID],
    type: NotificationType,
    title: str,
    message: str,
    priority: NotificationPriority = NotificationPriority.medium,
    case_id: Optional[uuid.UUID] = None,
    task_id: Optional[uuid.UUID] = None,
) -> list[Notification]:
    notifications = []
    for recipient_id in dict.fromkeys(recipient_ids):
        notifications.append(
            await create_notification(db, recipient_id, type, title, message, priority, case_id, task_id)
        )
    return notifications


async def notify_role_based_users(
    db: AsyncSession,
    roles: list[UserRole],
    type: NotificationType,
    title: str,
    message: str,
    case_id: Optional[uuid.UUID] = None,
    task_id: Optional[uuid.UUID] = None,
    exclude_user_id: Optional[uuid.UUID] = None,
    priority: NotificationPriority = NotificationPriority.medium,
) -> list[Notification]:
    """Fan a notification out to every active user holding one of ``roles``."""
    query = select(User.id).where(User.role.in_(roles), User.is_active == True)  # noqa: E712
    if exclude_user_id is not None:
        query = query.where(User.id != exclude_user_id)
    recipient_ids = (await db.execute(query)).scalars().all()
    logger.debug("Notifying %d users (%s): %s", len(recipient_ids), type.value, title)
    return await notify_users(db, recipient_ids, type, title, message, priority, case_id, task_id)


async def get_notifications(
    db: AsyncSession,
    user_id: uuid.UUID,
    page: int = 1,
    page_size: int = 50,
    unread_only: bool = False,
) -> tuple[list[Notification], int]:
    query = select(Notification).where(Notification.recipient_id == user_id)
    count_query = select(func.count(Notification.id)).where(Notification.recipient_id == user_id)

    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712
        count_query = count_query.where(Notification.is_read == False)  # noqa: E712

    total = (await db.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    result = await db.execute(query.order_by(Notification.created_at.desc()).offset(offset).limit(page_size))
    return result.scalars().all(), total


async def get_unread_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.recipient_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
    )
    return result.scalar_one()


async def mark_as_read(db: AsyncSession, notification_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.recipient_id == user_id)
        .values(is_read=True)
    )
    await db.flush()
    return result.rowcount > 0


async def mark_all_as_read(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.recipient_id == user_id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True)
    )
    await db.flush()
    return result.rowcount
