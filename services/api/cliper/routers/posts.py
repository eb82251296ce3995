"""
Post endpoints:
  POST /posts                      — create a post (multipart image upload)
  GET  /posts/feed                 — posts from followed users, newest first
  GET  /posts/user/{user_id}       — a user's posts
  GET  /posts/{post_id}            — fetch a single post
  POST /posts/{post_id}/like       — like / unlike toggle
  POST /posts/{post_id}/comments   — add a comment
  GET  /posts/{post_id}/comments   — list comments, newest first
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from cliper.clients.storage_client import media_url
from cliper.config import settings
from cliper.database import get_db
from cliper.dependencies import (
    Page,
    get_current_user_id,
    get_optional_user_id,
    get_outbox,
    pagination,
)
from cliper.errors import ValidationError
from cliper.managers import content
from cliper.models import Comment, Post
from cliper.realtime import NotificationOutbox
from cliper.schemas import (
    CommentCreate,
    CommentCreatedResponse,
    CommentResponse,
    CommentsPage,
    LikeToggleResponse,
    PostCreatedResponse,
    PostDetailResponse,
    PostResponse,
    PostsPage,
    UserSummary,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _build_post_response(post: Post, is_liked: bool = False) -> PostResponse:
    return PostResponse(
        id=post.post_id,
        user_id=post.user_id,
        image_url=media_url(post.image_key),
        caption=post.caption,
        location=post.location,
        hashtags=post.hashtags or [],
        likes_count=post.likes_count,
        comments_count=post.comments_count,
        created_at=post.created_at,
        user=UserSummary.model_validate(post.author) if post.author else None,
        is_liked=is_liked,
    )


def _build_comment_response(comment: Comment) -> CommentResponse:
    return CommentResponse(
        id=comment.comment_id,
        post_id=comment.post_id,
        content=comment.content,
        created_at=comment.created_at,
        user=UserSummary.model_validate(comment.author) if comment.author else None,
    )


async def _read_image(image: Optional[UploadFile]) -> bytes:
    if image is None or not image.filename:
        raise ValidationError("Image is required")
    if not (image.content_type or "").startswith("image/"):
        raise ValidationError("Only image files are allowed")
    data = await image.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise ValidationError("Image exceeds the 10MB upload limit")
    if not data:
        raise ValidationError("Image is required")
    return data


@router.post("", response_model=PostCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    image: Optional[UploadFile] = File(None),
    caption: str = Form(""),
    location: str = Form(""),
    hashtags: str = Form(""),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Post ingestion path:

    1. Validate the upload (image MIME, ≤ max_upload_bytes).
    2. Normalise the image and upload it to MinIO.
    3. Persist the post row and bump the author's posts_count.
    """
    data = await _read_image(image)
    post = await content.create_post(
        db,
        user_id,
        data,
        caption=caption,
        location=location,
        hashtags=content.parse_hashtags(hashtags),
    )
    return PostCreatedResponse(
        message="Post created successfully",
        post=_build_post_response(post),
    )


@router.get("/feed", response_model=PostsPage)
async def get_feed(
    page: Page = Depends(pagination(10)),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    posts, has_more = await content.feed(db, user_id, page.offset, page.limit)
    liked = await content.liked_post_ids(db, user_id, [p.post_id for p in posts])
    return PostsPage(
        posts=[_build_post_response(p, p.post_id in liked) for p in posts],
        has_more=has_more,
    )


@router.get("/user/{user_id}", response_model=PostsPage)
async def get_user_posts(
    user_id: str,
    page: Page = Depends(pagination(12)),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    posts, has_more = await content.list_user_posts(db, user_id, page.offset, page.limit)
    liked = await content.liked_post_ids(db, viewer_id, [p.post_id for p in posts])
    return PostsPage(
        posts=[_build_post_response(p, p.post_id in liked) for p in posts],
        has_more=has_more,
    )


@router.get("/{post_id}", response_model=PostDetailResponse)
async def get_post(
    post_id: str,
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    post = await content.get_post(db, post_id)
    liked = await content.liked_post_ids(db, viewer_id, [post_id])
    return PostDetailResponse(post=_build_post_response(post, post_id in liked))


@router.post("/{post_id}/like", response_model=LikeToggleResponse)
async def toggle_like(
    post_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
):
    is_liked, likes_count = await content.toggle_like(db, outbox, user_id, post_id)
    return LikeToggleResponse(
        message="Post liked" if is_liked else "Post unliked",
        is_liked=is_liked,
        likes_count=likes_count,
    )


@router.post(
    "/{post_id}/comments",
    response_model=CommentCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    post_id: str,
    body: CommentCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
):
    comment = await content.add_comment(db, outbox, user_id, post_id, body.content)
    return CommentCreatedResponse(
        message="Comment created successfully",
        comment=_build_comment_response(comment),
    )


@router.get("/{post_id}/comments", response_model=CommentsPage)
async def list_comments(
    post_id: str,
    page: Page = Depends(pagination(20)),
    db: AsyncSession = Depends(get_db),
):
    comments, has_more = await content.list_comments(db, post_id, page.offset, page.limit)
    return CommentsPage(
        comments=[_build_comment_response(c) for c in comments],
        has_more=has_more,
    )
