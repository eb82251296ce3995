"""
Social graph endpoints:
  POST   /follows/{user_id}           — follow a user
  DELETE /follows/{user_id}           — unfollow
  GET    /follows/{user_id}/status    — does the caller follow user_id?
  GET    /follows/{user_id}/followers — who follows user_id
  GET    /follows/{user_id}/following — who user_id follows
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cliper.database import get_db
from cliper.dependencies import Page, get_current_user_id, get_outbox, pagination
from cliper.managers import social_graph
from cliper.realtime import NotificationOutbox
from cliper.schemas import (
    FollowEdge,
    FollowersPage,
    FollowingPage,
    FollowResponse,
    FollowStatus,
    FollowUser,
    MessageResponse,
)

router = APIRouter()


@router.post("/{user_id}", response_model=FollowResponse)
async def follow_user(
    user_id: str,
    follower_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
):
    edge = await social_graph.follow(db, outbox, follower_id, user_id)
    return FollowResponse(
        message="Successfully followed user",
        follow=FollowEdge.model_validate(edge),
    )


@router.delete("/{user_id}", response_model=MessageResponse)
async def unfollow_user(
    user_id: str,
    follower_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await social_graph.unfollow(db, follower_id, user_id)
    return MessageResponse(message="Successfully unfollowed user")


@router.get("/{user_id}/status", response_model=FollowStatus)
async def follow_status(
    user_id: str,
    follower_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return FollowStatus(is_following=await social_graph.is_following(db, follower_id, user_id))


@router.get("/{user_id}/followers", response_model=FollowersPage)
async def list_followers(
    user_id: str,
    page: Page = Depends(pagination(20)),
    db: AsyncSession = Depends(get_db),
):
    found, has_more = await social_graph.list_followers(db, user_id, page.offset, page.limit)
    return FollowersPage(
        followers=[FollowUser.model_validate(u) for u in found],
        has_more=has_more,
    )


@router.get("/{user_id}/following", response_model=FollowingPage)
async def list_following(
    user_id: str,
    page: Page = Depends(pagination(20)),
    db: AsyncSession = Depends(get_db),
):
    found, has_more = await social_graph.list_following(db, user_id, page.offset, page.limit)
    return FollowingPage(
        following=[FollowUser.model_validate(u) for u in found],
        has_more=has_more,
    )
