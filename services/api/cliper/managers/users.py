"""
Accounts and profiles: registration, login, profile edits, lookup and search.
"""
import logging
from typing import Optional

from opentelemetry import trace
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from cliper.errors import AuthError, ConflictError, NotFound
from cliper.models import Follow, User
from cliper.pagination import fetch_page
from cliper.schemas import ProfileUpdate, RegisterRequest
from cliper.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_AVATAR = "https://api.dicebear.com/7.x/avataaars/svg?seed={username}"


async def get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


async def register(db: AsyncSession, body: RegisterRequest) -> tuple[User, str]:
    """Create the account and return it with a fresh token."""
    with tracer.start_as_current_span("register_user"):
        email = body.email.lower()
        existing = await db.execute(
            select(User.user_id).where(
                or_(User.email == email, User.username == body.username)
            )
        )
        if existing.first():
            raise ConflictError("User with this email or username already exists")

        password_hash = await run_in_threadpool(hash_password, body.password)
        user = User(
            email=email,
            username=body.username,
            password_hash=password_hash,
            full_name=body.full_name.strip(),
            profile_picture=DEFAULT_AVATAR.format(username=body.username),
            bio="",
            is_private=False,
            followers_count=0,
            following_count=0,
            posts_count=0,
        )
        db.add(user)
        await db.flush()  # get user_id before commit

        logger.info("Registered user %s (id=%s)", user.username, user.user_id)
        return user, create_access_token(user.user_id, user.email)


async def login(db: AsyncSession, email: str, password: str) -> tuple[User, str]:
    with tracer.start_as_current_span("login_user"):
        user = await db.scalar(select(User).where(User.email == email.lower()))
        if user is None:
            raise AuthError("Invalid credentials")
        if not await run_in_threadpool(verify_password, password, user.password_hash):
            raise AuthError("Invalid credentials")
        return user, create_access_token(user.user_id, user.email)


async def username_taken(
    db: AsyncSession, username: str, exclude_user_id: Optional[str] = None
) -> bool:
    stmt = select(User.user_id).where(User.username == username)
    if exclude_user_id:
        stmt = stmt.where(User.user_id != exclude_user_id)
    return (await db.execute(stmt)).first() is not None


async def update_profile(db: AsyncSession, user_id: str, body: ProfileUpdate) -> User:
    """Apply the non-empty fields of `body`; a username clash is a conflict."""
    user = await get_user(db, user_id)
    if body.username and body.username != user.username:
        if await username_taken(db, body.username, exclude_user_id=user_id):
            raise ConflictError("Username already taken")
        user.username = body.username
    if body.full_name:
        user.full_name = body.full_name.strip()
    if body.bio:
        user.bio = body.bio
    if body.is_private is not None:
        user.is_private = body.is_private
    await db.flush()
    return user


async def update_profile_picture(db: AsyncSession, user_id: str, url: str) -> User:
    user = await get_user(db, user_id)
    user.profile_picture = url
    await db.flush()
    return user


async def get_by_username(db: AsyncSession, username: str) -> User:
    user = await db.scalar(select(User).where(User.username == username))
    if not user:
        raise NotFound("User not found")
    return user


async def search(
    db: AsyncSession, requester_id: str, query: str, offset: int, limit: int
) -> tuple[list[User], bool]:
    """Case-insensitive substring match on username or full name."""
    term = query.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{term}%"
    stmt = (
        select(User)
        .where(
            or_(
                func.lower(User.username).like(pattern, escape="\\"),
                func.lower(User.full_name).like(pattern, escape="\\"),
            ),
            User.user_id != requester_id,
        )
        .order_by(User.followers_count.desc(), User.username)
    )
    return await fetch_page(db, stmt, offset, limit)


async def suggested(db: AsyncSession, requester_id: str, limit: int) -> list[User]:
    """Most-followed users the requester does not already follow."""
    following = select(Follow.following_id).where(Follow.follower_id == requester_id)
    rows = await db.execute(
        select(User)
        .where(User.user_id != requester_id, User.user_id.not_in(following))
        .order_by(User.followers_count.desc(), User.username)
        .limit(limit)
    )
    return list(rows.scalars().all())
