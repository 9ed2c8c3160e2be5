"""Auth schemas."""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, EmailStr, Field

from clouddrive.schemas.base import ApiModel

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


Password = Annotated[str, Field(min_length=6), AfterValidator(_check_password_bytes)]


class RegisterRequest(ApiModel):
    email: EmailStr
    password: Password
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)


class LoginRequest(ApiModel):
    email: str = ""
    password: str = ""


class ForgotPasswordRequest(ApiModel):
    email: EmailStr


class ResetPasswordRequest(ApiModel):
    token: str = Field(min_length=1)
    password: Password


class UserProfile(ApiModel):
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    is_activated: bool
    created_at: datetime
    updated_at: datetime


class TokenResponse(BaseModel):
    """OAuth2-style field names, camelCase user profile."""

    access_token: str
    token_type: str = "bearer"
    user: UserProfile
