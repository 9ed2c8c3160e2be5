"""FastAPI dependency injection: auth, DB session and service wiring."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clouddrive.config import Settings, settings
from clouddrive.database import get_db
from clouddrive.models.user import User
from clouddrive.security import decode_access_token
from clouddrive.services import AuthService, BlobStore, FileService, Mailer

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.api_prefix}/auth/login",
    auto_error=False,
)


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_blob_store(request: Request) -> BlobStore:
    """The process-wide S3 client built in ``create_app``."""
    return request.app.state.blob_store


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_file_service(
    blob_store: BlobStore = Depends(get_blob_store),
    app_settings: Settings = Depends(get_settings_dep),
) -> FileService:
    return FileService(
        blob_store,
        max_path_depth=app_settings.max_path_depth,
        download_url_ttl=app_settings.download_url_ttl_seconds,
    )


def get_auth_service(
    mailer: Mailer = Depends(get_mailer),
    app_settings: Settings = Depends(get_settings_dep),
) -> AuthService:
    return AuthService(mailer, app_settings)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings_dep),
) -> User:
    """Resolve the bearer token to a stored user."""
    if not token:
        raise _unauthorized("No authentication token provided")

    user_id = decode_access_token(token, app_settings)
    if user_id is None:
        raise _unauthorized("Invalid or expired token")

    user = await db.get(User, user_id)
    if user is None:
        logger.info("Token for unknown user %s rejected", user_id)
        raise _unauthorized("User no longer exists")
    return user
