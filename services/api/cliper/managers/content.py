"""
Posts, likes and comments.

Write path:
  create_post  — normalise + upload the image, persist the post, bump posts_count
  toggle_like  — like / unlike, bump likes_count, notify the author on like
  add_comment  — persist a trimmed comment, bump comments_count, notify the author

Actions on one's own post never produce a notification.
"""
import logging
from typing import Iterable, Optional

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from cliper.clients.storage_client import upload_post_image
from cliper.errors import NotFound, ValidationError
from cliper.managers import notifications
from cliper.managers.counters import bump
from cliper.models import Comment, Follow, Like, Post, User
from cliper.pagination import fetch_page
from cliper.realtime import NotificationOutbox
from cliper.telemetry import POSTS_CREATED_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def parse_hashtags(raw: Optional[str]) -> list[str]:
    """'travel, #sun ,, food' → ['travel', '#sun', 'food'] (order kept)."""
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


async def _get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


async def get_post(db: AsyncSession, post_id: str) -> Post:
    post = await db.get(Post, post_id)
    if not post:
        raise NotFound("Post not found")
    return post


async def create_post(
    db: AsyncSession,
    user_id: str,
    image: bytes,
    caption: str = "",
    location: str = "",
    hashtags: Iterable[str] = (),
) -> Post:
    with tracer.start_as_current_span("create_post") as span:
        author = await _get_user(db, user_id)

        # boto3 and Pillow block; run off the event loop
        image_key = await run_in_threadpool(upload_post_image, image)

        post = Post(
            user_id=user_id,
            image_key=image_key,
            caption=caption or "",
            location=location or "",
            hashtags=list(hashtags),
            likes_count=0,
            comments_count=0,
            author=author,
        )
        db.add(post)
        await db.flush()  # materialise post_id

        await bump(db, User, User.user_id, user_id, "posts_count", +1)

        span.set_attribute("post.id", post.post_id)
        span.set_attribute("post.user_id", user_id)
        POSTS_CREATED_TOTAL.inc()
        logger.info("Post created: %s by user %s", post.post_id, user_id)
        return post


async def feed(
    db: AsyncSession, user_id: str, offset: int, limit: int
) -> tuple[list[Post], bool]:
    """Posts by everyone `user_id` follows, newest first."""
    with tracer.start_as_current_span("get_feed") as span:
        span.set_attribute("user.id", user_id)
        following = select(Follow.following_id).where(Follow.follower_id == user_id)
        stmt = (
            select(Post)
            .where(Post.user_id.in_(following))
            .order_by(Post.created_at.desc(), Post.post_id.desc())
        )
        return await fetch_page(db, stmt, offset, limit)


async def liked_post_ids(db: AsyncSession, user_id: Optional[str], post_ids: list[str]) -> set[str]:
    """Subset of `post_ids` that `user_id` has liked."""
    if not user_id or not post_ids:
        return set()
    rows = await db.execute(
        select(Like.post_id).where(Like.user_id == user_id, Like.post_id.in_(post_ids))
    )
    return {row[0] for row in rows.all()}


async def toggle_like(
    db: AsyncSession, outbox: NotificationOutbox, user_id: str, post_id: str
) -> tuple[bool, int]:
    """Flip the like state of (user, post); returns (is_liked, likes_count)."""
    with tracer.start_as_current_span("toggle_like") as span:
        span.set_attribute("post.id", post_id)
        post = await get_post(db, post_id)

        existing = await db.get(Like, (user_id, post_id))
        if existing:
            await db.delete(existing)
            await db.flush()
            await bump(db, Post, Post.post_id, post_id, "likes_count", -1)
            is_liked = False
        else:
            db.add(Like(user_id=user_id, post_id=post_id))
            await db.flush()
            await bump(db, Post, Post.post_id, post_id, "likes_count", +1)
            is_liked = True

            if post.user_id != user_id:
                await notifications.create_notification(
                    db,
                    outbox,
                    type="like",
                    sender_id=user_id,
                    recipient_id=post.user_id,
                    content="liked your post",
                    post_id=post_id,
                )

        await db.refresh(post, attribute_names=["likes_count"])
        logger.info("%s %s post %s", user_id, "liked" if is_liked else "unliked", post_id)
        return is_liked, post.likes_count


async def add_comment(
    db: AsyncSession,
    outbox: NotificationOutbox,
    user_id: str,
    post_id: str,
    content: Optional[str],
) -> Comment:
    with tracer.start_as_current_span("add_comment") as span:
        span.set_attribute("post.id", post_id)
        text = (content or "").strip()
        if not text:
            raise ValidationError("Comment content is required")

        post = await get_post(db, post_id)
        author = await _get_user(db, user_id)

        comment = Comment(post_id=post_id, user_id=user_id, content=text, author=author)
        db.add(comment)
        await db.flush()

        await bump(db, Post, Post.post_id, post_id, "comments_count", +1)

        if post.user_id != user_id:
            await notifications.create_notification(
                db,
                outbox,
                type="comment",
                sender_id=user_id,
                recipient_id=post.user_id,
                content=f'commented: "{text}"',
                post_id=post_id,
                comment_id=comment.comment_id,
            )
        return comment


async def list_comments(
    db: AsyncSession, post_id: str, offset: int, limit: int
) -> tuple[list[Comment], bool]:
    stmt = (
        select(Comment)
        .where(Comment.post_id == post_id)
        .order_by(Comment.created_at.desc(), Comment.comment_id.desc())
    )
    return await fetch_page(db, stmt, offset, limit)


async def list_user_posts(
    db: AsyncSession, user_id: str, offset: int, limit: int
) -> tuple[list[Post], bool]:
    stmt = (
        select(Post)
        .where(Post.user_id == user_id)
        .order_by(Post.created_at.desc(), Post.post_id.desc())
    )
    return await fetch_page(db, stmt, offset, limit)
