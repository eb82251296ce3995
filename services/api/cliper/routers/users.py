"""
User directory endpoints:
  GET /users/profile/{username}        — public profile + counters
  GET /users/search?q=                 — search by username / full name
  GET /users/suggested                 — most-followed users not yet followed
  PUT /users/profile-picture           — set avatar URL
  GET /users/{user_id}/stats           — counters only
  GET /users/check-username/{username} — availability check
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cliper.database import get_db
from cliper.dependencies import Page, get_current_user_id, pagination
from cliper.errors import ValidationError
from cliper.managers import users
from cliper.schemas import (
    ProfilePictureResponse,
    ProfilePictureUpdate,
    ProfileResponse,
    SuggestedUsersResponse,
    UserListResponse,
    UsernameAvailability,
    UserProfile,
    UserPublic,
    UserStats,
    UserStatsResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/profile/{username}", response_model=ProfileResponse)
async def get_profile(username: str, db: AsyncSession = Depends(get_db)):
    user = await users.get_by_username(db, username)
    return ProfileResponse(user=UserProfile.model_validate(user))


@router.get("/search", response_model=UserListResponse)
async def search_users(
    q: str = Query(""),
    page: Page = Depends(pagination(20)),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    if not q.strip():
        raise ValidationError("Search query is required")
    found, has_more = await users.search(db, user_id, q, page.offset, page.limit)
    return UserListResponse(
        users=[UserPublic.model_validate(u) for u in found],
        has_more=has_more,
    )


@router.get("/suggested", response_model=SuggestedUsersResponse)
async def suggested_users(
    limit: int = Query(10, ge=1, le=50),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    found = await users.suggested(db, user_id, limit)
    return SuggestedUsersResponse(users=[UserPublic.model_validate(u) for u in found])


@router.put("/profile-picture", response_model=ProfilePictureResponse)
async def update_profile_picture(
    body: ProfilePictureUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    user = await users.update_profile_picture(db, user_id, body.profile_picture)
    logger.info("Profile picture updated for %s", user_id)
    return ProfilePictureResponse(
        message="Profile picture updated successfully",
        profile_picture=user.profile_picture,
    )


@router.get("/{user_id}/stats", response_model=UserStatsResponse)
async def user_stats(user_id: str, db: AsyncSession = Depends(get_db)):
    user = await users.get_user(db, user_id)
    return UserStatsResponse(stats=UserStats.model_validate(user))


@router.get("/check-username/{username}", response_model=UsernameAvailability)
async def check_username(username: str, db: AsyncSession = Depends(get_db)):
    return UsernameAvailability(available=not await users.username_taken(db, username))
