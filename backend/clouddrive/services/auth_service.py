"""Registration, activation, login and password reset."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clouddrive.config import Settings
from clouddrive.exceptions import (
    AuthenticationFailed,
    EmailDeliveryError,
    NotFound,
    ValidationFailed,
)
from clouddrive.models.user import User
from clouddrive.security import (
    create_access_token,
    generate_opaque_token,
    hash_password,
    verify_password,
)
from clouddrive.services.mailer import Mailer

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
NOT_ACTIVATED = "Please activate your account first. Check your email for the activation link."
RESET_REQUESTED = "If an account exists with this email, a reset link will be sent."


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Credential and token flows against the ``users`` table."""

    def __init__(self, mailer: Mailer, settings: Settings):
        self._mailer = mailer
        self._settings = settings
        self._activation_ttl = timedelta(hours=settings.activation_token_hours)
        self._reset_ttl = timedelta(minutes=settings.reset_token_minutes)

    async def _find_by_email(self, db: AsyncSession, email: str) -> User | None:
        result = await db.execute(select(User).where(User.email == normalize_email(email)))
        return result.scalar_one_or_none()

    async def register(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        """Create an inactive account and mail its activation link.

        A failed email does not fail registration.
        """
        if await self._find_by_email(db, email):
            raise ValidationFailed("User already exists with this email")

        token = generate_opaque_token()
        user = User(
            email=normalize_email(email),
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            is_activated=False,
            activation_token=token,
            activation_expires=datetime.now(timezone.utc) + self._activation_ttl,
        )
        db.add(user)
        await db.commit()
        logger.info("Registered user %s", user.id)

        try:
            await self._mailer.send_activation_email(user.email, token)
        except EmailDeliveryError:
            logger.exception("Activation email for user %s failed", user.id)
        return user

    async def activate(self, db: AsyncSession, token: str) -> User:
        result = await db.execute(
            select(User).where(
                User.activation_token == token,
                User.activation_expires > datetime.now(timezone.utc),
            )
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise ValidationFailed("Invalid or expired activation token")

        user.is_activated = True
        user.activation_token = None
        user.activation_expires = None
        await db.commit()
        logger.info("Activated user %s", user.id)
        return user

    async def login(self, db: AsyncSession, email: str, password: str) -> tuple[str, User]:
        """Check credentials and return ``(access_token, user)``."""
        if not email or not password:
            raise ValidationFailed("Please provide email and password")

        user = await self._find_by_email(db, email)
        if user is None:
            logger.info("Login failed: unknown email")
            raise AuthenticationFailed(INVALID_CREDENTIALS)
        if not user.is_activated:
            logger.info("Login refused for inactive user %s", user.id)
            raise AuthenticationFailed(NOT_ACTIVATED)
        if not verify_password(password, user.password_hash):
            logger.info("Login failed: wrong password for user %s", user.id)
            raise AuthenticationFailed(INVALID_CREDENTIALS)

        return create_access_token(user.id, settings=self._settings), user

    async def request_password_reset(self, db: AsyncSession, email: str) -> None:
        """Issue a reset token and mail it.

        Silent for unknown emails. If the email cannot be sent the token is
        cleared again and ``EmailDeliveryError`` propagates.
        """
        user = await self._find_by_email(db, email)
        if user is None:
            return

        token = generate_opaque_token()
        user.reset_password_token = token
        user.reset_password_expires = datetime.now(timezone.utc) + self._reset_ttl
        await db.commit()

        try:
            await self._mailer.send_password_reset_email(user.email, token)
        except EmailDeliveryError:
            logger.exception("Password reset email for user %s failed", user.id)
            user.reset_password_token = None
            user.reset_password_expires = None
            await db.commit()
            raise EmailDeliveryError("Error sending email. Please try again.")
        logger.info("Password reset requested for user %s", user.id)

    async def reset_password(self, db: AsyncSession, token: str, password: str) -> User:
        result = await db.execute(
            select(User).where(
                User.reset_password_token == token,
                User.reset_password_expires > datetime.now(timezone.utc),
            )
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise ValidationFailed("Invalid or expired reset token")

        user.password_hash = hash_password(password)
        user.reset_password_token = None
        user.reset_password_expires = None
        await db.commit()
        logger.info("Password reset for user %s", user.id)
        return user

    async def get_user(self, db: AsyncSession, user_id: str) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user
