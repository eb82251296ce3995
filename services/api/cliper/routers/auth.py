"""
Account endpoints:
  POST /auth/register — create an account, returns {user, token}
  POST /auth/login    — exchange email + password for a token
  GET  /auth/me       — the caller's own profile
  PUT  /auth/profile  — edit username / full name / bio / privacy
"""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cliper.database import get_db
from cliper.dependencies import get_current_user_id
from cliper.managers import users
from cliper.schemas import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    ProfileUpdate,
    ProfileUpdateResponse,
    RegisterRequest,
    UserResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    user, token = await users.register(db, body)
    return AuthResponse(
        message="User created successfully",
        user=UserResponse.model_validate(user),
        token=token,
    )


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    user, token = await users.login(db, body.email, body.password)
    return AuthResponse(
        message="Login successful",
        user=UserResponse.model_validate(user),
        token=token,
    )


@router.get("/me", response_model=MeResponse)
async def me(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    user = await users.get_user(db, user_id)
    return MeResponse(user=UserResponse.model_validate(user))


@router.put("/profile", response_model=ProfileUpdateResponse)
async def update_profile(
    body: ProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    user = await users.update_profile(db, user_id, body)
    logger.info("Profile updated for %s", user_id)
    return ProfileUpdateResponse(
        message="Profile updated successfully",
        user=UserResponse.model_validate(user),
    )
