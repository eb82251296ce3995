"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.

Field names are snake_case in Python and camelCase on the wire.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str


# ──────────────────────────── Users ───────────────────────────────────────

class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    full_name: str = Field(..., min_length=1, max_length=255)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        # bcrypt only accepts up to 72 bytes of input
        if len(v.encode("utf-8")) > 72:
            raise ValueError("Password must be at most 72 bytes")
        return v


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(CamelModel):
    username: Optional[str] = Field(
        None, min_length=3, max_length=30, pattern=USERNAME_PATTERN
    )
    full_name: Optional[str] = Field(None, max_length=255)
    bio: Optional[str] = Field(None, max_length=500)
    is_private: Optional[bool] = None


class ProfilePictureUpdate(CamelModel):
    profile_picture: str = Field(..., min_length=1, max_length=1000)


class UserSummary(CamelModel):
    """Compact author / sender card embedded in posts, comments, notifications."""
    id: str = Field(validation_alias=AliasChoices("id", "user_id"))
    username: str
    full_name: str
    profile_picture: Optional[str] = None


class FollowUser(UserSummary):
    bio: str = ""


class UserPublic(FollowUser):
    followers_count: int
    following_count: int
    posts_count: int


class UserProfile(UserPublic):
    is_private: bool
    created_at: datetime


class UserResponse(UserProfile):
    """The authenticated user's own record."""
    email: str


class AuthResponse(CamelModel):
    message: str
    user: UserResponse
    token: str


class MeResponse(CamelModel):
    user: UserResponse


class ProfileUpdateResponse(CamelModel):
    message: str
    user: UserResponse


class ProfileResponse(CamelModel):
    user: UserProfile


class UserListResponse(CamelModel):
    users: list[UserPublic]
    has_more: bool


class SuggestedUsersResponse(CamelModel):
    users: list[UserPublic]


class UserStats(CamelModel):
    followers_count: int
    following_count: int
    posts_count: int


class UserStatsResponse(CamelModel):
    stats: UserStats


class UsernameAvailability(CamelModel):
    available: bool


class ProfilePictureResponse(CamelModel):
    message: str
    profile_picture: str


# ──────────────────────────── Follows ─────────────────────────────────────

class FollowEdge(CamelModel):
    follower_id: str
    following_id: str
    created_at: datetime


class FollowResponse(CamelModel):
    message: str
    follow: FollowEdge


class FollowStatus(CamelModel):
    is_following: bool


class FollowersPage(CamelModel):
    followers: list[FollowUser]
    has_more: bool


class FollowingPage(CamelModel):
    following: list[FollowUser]
    has_more: bool


# ──────────────────────────── Posts ───────────────────────────────────────

class PostResponse(CamelModel):
    id: str
    user_id: str
    image_url: Optional[str]   # pre-signed MinIO URL
    caption: str
    location: str
    hashtags: list[str]
    likes_count: int
    comments_count: int
    created_at: datetime
    user: Optional[UserSummary] = None
    is_liked: bool = False


class PostCreatedResponse(CamelModel):
    message: str
    post: PostResponse


class PostDetailResponse(CamelModel):
    post: PostResponse


class PostsPage(CamelModel):
    posts: list[PostResponse]
    has_more: bool


class LikeToggleResponse(CamelModel):
    message: str
    is_liked: bool
    likes_count: int


class CommentCreate(CamelModel):
    content: str = Field("", max_length=2200)


class CommentResponse(CamelModel):
    id: str
    post_id: str
    content: str
    created_at: datetime
    user: Optional[UserSummary] = None


class CommentCreatedResponse(CamelModel):
    message: str
    comment: CommentResponse


class CommentsPage(CamelModel):
    comments: list[CommentResponse]
    has_more: bool


# ──────────────────────────── Notifications ───────────────────────────────

class NotificationResponse(CamelModel):
    id: str
    type: str
    content: str
    is_read: bool
    created_at: datetime
    sender: Optional[UserSummary] = None
    post_id: Optional[str] = None
    comment_id: Optional[str] = None


class NotificationsPage(CamelModel):
    notifications: list[NotificationResponse]
    has_more: bool


class UnreadCountResponse(CamelModel):
    unread_count: int


# ──────────────────────────── Real-time ───────────────────────────────────

class RealtimeFrame(BaseModel):
    """One JSON frame on the /ws channel: {"event": ..., "data": ...}."""
    event: str
    data: Any = None


class TypingEvent(CamelModel):
    recipient_id: str
    is_typing: bool


# ──────────────────────────── Health ──────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    message: str
    database: str
    storage: str
