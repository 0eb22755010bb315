"""In-app notification dispatch and the per-user inbox.

Delivery is best-effort: a failure is logged and never propagates to the
operation that triggered it. Inbox reads and writes raise like any other
storage operation.
"""

import logging
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.models.notification import Notification, NotificationType, RelatedType
from loandesk.models.user import User, UserRole
from loandesk.services.errors import NotFoundError, storage_errors

logger = logging.getLogger(__name__)


def format_inr(amount: float) -> str:
    """Format with Indian digit grouping, e.g. 1200000 -> '₹12,00,000'."""
    whole = f"{round(float(amount)):d}"
    sign = ""
    if whole.startswith("-"):
        sign, whole = "-", whole[1:]
    if len(whole) <= 3:
        return f"{sign}₹{whole}"
    head, tail = whole[:-3], whole[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return f"{sign}₹{','.join(groups)},{tail}"


async def notify(
    db: AsyncSession,
    user_id: int,
    type: NotificationType,
    title: str,
    message: str,
    related_id: int | str | None = None,
    related_type: RelatedType | None = None,
) -> Notification | None:
    """Create one notification. Returns None if it could not be stored."""
    try:
        async with db.begin_nested():
            notification = Notification(
                user_id=user_id,
                type=type,
                title=title,
                message=message,
                related_id=str(related_id) if related_id is not None else None,
                related_type=related_type,
            )
            db.add(notification)
        return notification
    except SQLAlchemyError as e:
        logger.error("Failed to store %s notification for user %s: %s", type.value, user_id, e)
        return None


async def notify_roles(
    db: AsyncSession,
    roles: Iterable[UserRole],
    type: NotificationType,
    title: str,
    message: str,
    related_id: int | str | None = None,
    related_type: RelatedType | None = None,
) -> list[Notification]:
    """Fan out one notification per active user holding any of *roles*."""
    try:
        result = await db.execute(
            select(User.id).where(User.role.in_(list(roles)), User.is_active.is_(True))
        )
        recipients = list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error("Could not resolve %s recipients: %s", type.value, e)
        return []

    sent = []
    for user_id in recipients:
        notification = await notify(
            db, user_id, type, title, message,
            related_id=related_id, related_type=related_type,
        )
        if notification is not None:
            sent.append(notification)
    logger.info("Dispatched %d %s notification(s)", len(sent), type.value)
    return sent


# ── Inbox ────────────────────────────────────────────────────

async def list_notifications(
    db: AsyncSession,
    user_id: int,
    *,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    query = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    if unread_only:
        query = query.where(Notification.read.is_(False))
    async with storage_errors("list notifications"):
        result = await db.execute(query)
        return list(result.scalars().all())


async def unread_count(db: AsyncSession, user_id: int) -> int:
    async with storage_errors("count notifications"):
        count = await db.scalar(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id, Notification.read.is_(False),
            )
        )
    return count or 0


async def get_notification(db: AsyncSession, notification_id: int) -> Notification:
    async with storage_errors("load notification"):
        notification = await db.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError(f"Notification {notification_id} not found")
    return notification


async def mark_read(db: AsyncSession, notification: Notification) -> Notification:
    async with storage_errors("mark notification read"):
        notification.read = True
        await db.flush()
    return notification


async def mark_all_read(db: AsyncSession, user_id: int) -> int:
    """Mark every unread notification of *user_id* as read; returns how many changed."""
    async with storage_errors("mark all notifications read"):
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
    return result.rowcount or 0
