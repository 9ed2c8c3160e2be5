"""Password hashing (bcrypt) and bearer token issuing/decoding (JWT)."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from clouddrive.config import Settings, settings as default_settings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed stored hash or over-long password
        return False


def generate_opaque_token() -> str:
    """Random single-use token for activation and reset links."""
    return secrets.token_hex(32)


def create_access_token(
    user_id: str,
    minutes: int | None = None,
    settings: Settings | None = None,
) -> str:
    cfg = settings or default_settings
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=minutes or cfg.token_expire_minutes)
    payload: dict[str, Any] = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, cfg.secret_key, algorithm=cfg.token_algorithm)


def decode_access_token(token: str, settings: Settings | None = None) -> str | None:
    """Return the user id carried by ``token``, or None if it is not valid."""
    cfg = settings or default_settings
    try:
        payload = jwt.decode(
            token,
            cfg.secret_key,
            algorithms=[cfg.token_algorithm],
        )
    except JWTError:
        return None
    sub = payload.get("sub")
    return sub if isinstance(sub, str) and sub else None
