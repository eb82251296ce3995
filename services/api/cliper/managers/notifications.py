"""
Notification fan-out and read-state operations.

create_notification persists the row inside a savepoint so a failure never
takes the triggering follow / like / comment down with it; on success the
payload is queued on the request outbox and pushed after commit to whoever
holds the recipient's notification room.
"""
import logging
from typing import Optional

from opentelemetry import trace
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cliper.errors import NotFound
from cliper.models import Notification, User
from cliper.pagination import fetch_page
from cliper.realtime import NotificationOutbox
from cliper.schemas import NotificationResponse, UserSummary
from cliper.telemetry import NOTIFICATIONS_CREATED_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

NOTIFICATION_TYPES = ("follow", "like", "comment")


def build_notification(notification: Notification, sender: Optional[User]) -> NotificationResponse:
    return NotificationResponse(
        id=notification.notification_id,
        type=notification.type,
        content=notification.content,
        is_read=notification.is_read,
        created_at=notification.created_at,
        sender=UserSummary.model_validate(sender) if sender else None,
        post_id=notification.post_id,
        comment_id=notification.comment_id,
    )


async def create_notification(
    db: AsyncSession,
    outbox: NotificationOutbox,
    *,
    type: str,
    sender_id: str,
    recipient_id: str,
    content: str,
    post_id: Optional[str] = None,
    comment_id: Optional[str] = None,
) -> Optional[NotificationResponse]:
    """Persist a notification and queue its real-time push; None if persisting failed."""
    with tracer.start_as_current_span("create_notification") as span:
        span.set_attribute("notification.type", type)
        span.set_attribute("notification.recipient_id", recipient_id)

        notification = Notification(
            type=type,
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
            post_id=post_id,
            comment_id=comment_id,
            is_read=False,
        )
        try:
            async with db.begin_nested():
                db.add(notification)
        except SQLAlchemyError as exc:
            logger.error(
                "Create %s notification for %s failed: %s", type, recipient_id, exc
            )
            return None

        sender = await db.get(User, sender_id)
        payload = build_notification(notification, sender)
        outbox.add(recipient_id, payload.model_dump(by_alias=True, mode="json"))

        NOTIFICATIONS_CREATED_TOTAL.labels(type=type).inc()
        logger.info("Notification %s (%s) %s → %s", payload.id, type, sender_id, recipient_id)
        return payload


async def list_notifications(
    db: AsyncSession,
    recipient_id: str,
    offset: int,
    limit: int,
    type: Optional[str] = None,
) -> tuple[list[Notification], bool]:
    stmt = (
        select(Notification)
        .where(Notification.recipient_id == recipient_id)
        .order_by(Notification.created_at.desc(), Notification.notification_id.desc())
    )
    if type and type != "all":
        stmt = stmt.where(Notification.type == type)
    return await fetch_page(db, stmt, offset, limit)


async def mark_read(db: AsyncSession, recipient_id: str, notification_id: str) -> None:
    result = await db.execute(
        update(Notification)
        .where(
            Notification.notification_id == notification_id,
            Notification.recipient_id == recipient_id,
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound("Notification not found")


async def mark_all_read(db: AsyncSession, recipient_id: str) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def unread_count(db: AsyncSession, recipient_id: str) -> int:
    return await db.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
    )


async def delete_notification(db: AsyncSession, recipient_id: str, notification_id: str) -> None:
    result = await db.execute(
        delete(Notification)
        .where(
            Notification.notification_id == notification_id,
            Notification.recipient_id == recipient_id,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound("Notification not found")
