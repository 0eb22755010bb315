"""Per-user notification inbox."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.auth_utils import get_current_actor
from loandesk.database import get_db
from loandesk.schemas import NotificationResponse, UnreadCountResponse
from loandesk.services import notifications
from loandesk.services.actor import Actor

router = APIRouter()


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await notifications.list_notifications(
        db, actor.uid, unread_only=unread_only, limit=limit,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCountResponse(count=await notifications.unread_count(db, actor.uid))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    notification = await notifications.get_notification(db, notification_id)
    if notification.user_id != actor.uid:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return await notifications.mark_read(db, notification)


@router.post("/mark-all-read", response_model=UnreadCountResponse)
async def mark_all_read(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Returns how many notifications were marked."""
    return UnreadCountResponse(count=await notifications.mark_all_read(db, actor.uid))
