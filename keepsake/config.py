"""
Configuration and settings for the keepsake backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    environment: str = Field(default="production")
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    cors_origins: str = Field(default="*")

    # Database (any SQLAlchemy URL; SQLite file by default)
    database_url: Optional[str] = Field(default="sqlite:///./data/keepsake.db")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Bearer credentials
    jwt_secret: str = Field(default="change-me")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_minutes: int = Field(default=60 * 24 * 7)

    # Local photo storage
    upload_dir: str = Field(default="uploads")
    uploads_url_prefix: str = Field(default="/uploads")
    max_file_size: int = Field(default=10 * 1024 * 1024)
    max_upload_total_size: int = Field(default=100 * 1024 * 1024)
    max_upload_files: int = Field(default=20)
    thumbnail_width: int = Field(default=320)

    # S3-compatible storage (Tencent COS); takes over from local disk when a bucket is set
    cos_endpoint: Optional[str] = Field(default=None)
    cos_region: Optional[str] = Field(default=None)
    cos_bucket: Optional[str] = Field(default=None)
    cos_public_url: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    @model_validator(mode="after")
    def require_cos_public_url(self) -> "Settings":
        if self.cos_bucket and not self.cos_public_url:
            raise ValueError("COS_PUBLIC_URL is required when COS_BUCKET is set")
        return self

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()] or ["*"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
