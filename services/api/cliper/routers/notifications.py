"""
Notification inbox endpoints (all scoped to the authenticated recipient):
  GET    /notifications               — list, optional ?type=follow|like|comment|all
  GET    /notifications/unread-count  — exact unread count
  PATCH  /notifications/read-all      — mark everything read
  PATCH  /notifications/{id}/read     — mark one read
  DELETE /notifications/{id}          — delete one
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cliper.database import get_db
from cliper.dependencies import Page, get_current_user_id, pagination
from cliper.managers import notifications
from cliper.schemas import MessageResponse, NotificationsPage, UnreadCountResponse

router = APIRouter()


@router.get("", response_model=NotificationsPage)
async def list_notifications(
    type: Optional[str] = Query(None, pattern="^(all|follow|like|comment)$"),
    page: Page = Depends(pagination(20)),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    found, has_more = await notifications.list_notifications(
        db, user_id, page.offset, page.limit, type=type
    )
    return NotificationsPage(
        notifications=[notifications.build_notification(n, n.sender) for n in found],
        has_more=has_more,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCountResponse(unread_count=await notifications.unread_count(db, user_id))


@router.patch("/read-all", response_model=MessageResponse)
async def mark_all_read(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await notifications.mark_all_read(db, user_id)
    return MessageResponse(message="All notifications marked as read")


@router.patch("/{notification_id}/read", response_model=MessageResponse)
async def mark_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await notifications.mark_read(db, user_id, notification_id)
    return MessageResponse(message="Notification marked as read")


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await notifications.delete_notification(db, user_id, notification_id)
    return MessageResponse(message="Notification deleted")
