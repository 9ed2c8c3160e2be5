"""Auth routes: registration, activation, login and password reset."""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from clouddrive.api.deps import get_auth_service, get_current_user
from clouddrive.database import get_db
from clouddrive.models.user import User
from clouddrive.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserProfile,
)
from clouddrive.schemas.base import MessageResponse
from clouddrive.services.auth_service import RESET_REQUESTED, AuthService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    await auth.register(db, body.email, body.password, body.first_name, body.last_name)
    return MessageResponse(
        message="Registration successful! Please check your email to activate your account."
    )


@router.get("/activate/{token}", response_model=MessageResponse)
async def activate(
    token: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    await auth.activate(db, token)
    return MessageResponse(message="Account activated successfully! You can now login.")


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    token, user = await auth.login(db, body.email, body.password)
    return TokenResponse(access_token=token, user=UserProfile.model_validate(user))


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """Same answer whether or not the account exists."""
    await auth.request_password_reset(db, body.email)
    return MessageResponse(message=RESET_REQUESTED)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    await auth.reset_password(db, body.token, body.password)
    return MessageResponse(
        message="Password reset successfully! You can now login with your new password."
    )


@router.get("/profile", response_model=UserProfile)
async def profile(current_user: User = Depends(get_current_user)):
    return current_user
