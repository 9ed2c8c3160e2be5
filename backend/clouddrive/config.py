"""CloudDrive configuration: Pydantic BaseSettings loaded from .env."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    app_name: str = "CloudDrive"
    debug: bool = True
    environment: str = "development"
    log_level: str = "INFO"

    # Mode: dev = emails are logged, prod = emails go out over SMTP
    mode: str = "dev"

    # Network
    host: str = "127.0.0.1"
    port: int = 8000
    api_prefix: str = "/api"
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Auth
    secret_key: str = "change-me-in-prod"
    token_algorithm: str = "HS256"
    token_expire_minutes: int = 7 * 24 * 60  # 7 days
    activation_token_hours: int = 24
    reset_token_minutes: int = 60

    # Storage paths (relative resolved from backend/ at runtime)
    data_dir: str = "./data"
    database_path: str = "./data/clouddrive.db"

    # Object storage (S3 or any S3-compatible endpoint)
    s3_bucket: str = "clouddrive"
    s3_region: str = "us-east-1"
    s3_endpoint_url: str = ""
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    download_url_ttl_seconds: int = 3600
    max_upload_bytes: int = 100 * 1024 * 1024  # 100 MB

    # Breadcrumb walk bound
    max_path_depth: int = 256

    # Email
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 15.0
    email_from: str = "CloudDrive <no-reply@clouddrive.local>"
    frontend_url: str = "http://localhost:5173"

    @property
    def is_dev_mode(self) -> bool:
        return self.mode == "dev"

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        env_prefix="CLOUDDRIVE_",
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: list[str] | str) -> list[str]:
        if isinstance(value, str) and not value.startswith("["):
            return [o.strip() for o in value.split(",") if o.strip()]
        if isinstance(value, list):
            return value
        return ["http://localhost:5173"]

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Ensure data paths are absolute."""
        base = Path(__file__).resolve().parent.parent  # backend/
        for field in ("data_dir", "database_path"):
            val = getattr(self, field)
            if not Path(val).is_absolute():
                setattr(self, field, str(base / val))
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
