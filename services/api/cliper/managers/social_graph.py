"""
Social graph: directed follow edges between users plus the
followers_count / following_count counters they drive.
"""
import logging

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cliper.errors import AlreadyFollowing, NotFollowing, NotFound, SelfFollow
from cliper.managers import notifications
from cliper.managers.counters import bump
from cliper.models import Follow, User
from cliper.pagination import fetch_page
from cliper.realtime import NotificationOutbox

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def _get_edge(db: AsyncSession, follower_id: str, target_id: str):
    return await db.get(Follow, (follower_id, target_id))


async def follow(
    db: AsyncSession, outbox: NotificationOutbox, follower_id: str, target_id: str
) -> Follow:
    """
    Create the follower → target edge, bump both counters and notify the
    target. All three writes share the request transaction.
    """
    with tracer.start_as_current_span("follow_user") as span:
        span.set_attribute("follow.follower_id", follower_id)
        span.set_attribute("follow.target_id", target_id)

        if follower_id == target_id:
            raise SelfFollow("Cannot follow yourself")

        if not await db.get(User, target_id):
            raise NotFound("User not found")

        if await _get_edge(db, follower_id, target_id):
            raise AlreadyFollowing("Already following this user")

        edge = Follow(follower_id=follower_id, following_id=target_id)
        db.add(edge)
        await db.flush()

        await bump(db, User, User.user_id, target_id, "followers_count", +1)
        await bump(db, User, User.user_id, follower_id, "following_count", +1)

        await notifications.create_notification(
            db,
            outbox,
            type="follow",
            sender_id=follower_id,
            recipient_id=target_id,
            content="started following you",
        )
        logger.info("%s followed %s", follower_id, target_id)
        return edge


async def unfollow(db: AsyncSession, follower_id: str, target_id: str) -> None:
    with tracer.start_as_current_span("unfollow_user"):
        if follower_id == target_id:
            raise SelfFollow("Cannot unfollow yourself")

        edge = await _get_edge(db, follower_id, target_id)
        if edge is None:
            raise NotFollowing("Not following this user")

        await db.delete(edge)
        await db.flush()

        await bump(db, User, User.user_id, target_id, "followers_count", -1)
        await bump(db, User, User.user_id, follower_id, "following_count", -1)
        logger.info("%s unfollowed %s", follower_id, target_id)


async def is_following(db: AsyncSession, follower_id: str, target_id: str) -> bool:
    return await _get_edge(db, follower_id, target_id) is not None


async def list_followers(
    db: AsyncSession, user_id: str, offset: int, limit: int
) -> tuple[list[User], bool]:
    """Users following `user_id`, most recent edge first."""
    stmt = (
        select(Follow)
        .where(Follow.following_id == user_id)
        .order_by(Follow.created_at.desc(), Follow.follower_id)
    )
    edges, has_more = await fetch_page(db, stmt, offset, limit)
    return [edge.follower for edge in edges], has_more


async def list_following(
    db: AsyncSession, user_id: str, offset: int, limit: int
) -> tuple[list[User], bool]:
    """Users that `user_id` follows, most recent edge first."""
    stmt = (
        select(Follow)
        .where(Follow.follower_id == user_id)
        .order_by(Follow.created_at.desc(), Follow.following_id)
    )
    edges, has_more = await fetch_page(db, stmt, offset, limit)
    return [edge.following for edge in edges], has_more
