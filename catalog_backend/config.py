"""
Configuration and settings for the catalog backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api/v1")
    environment: str = Field(default="development", alias="NODE_ENV")
    log_level: str = Field(default="INFO")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, alias="PORT")

    # Database (Postgres expected, SQLite works for local runs)
    database_url: Optional[str] = Field(default=None)

    # Comma separated list of allowed browser origins
    cors_origin: str = Field(default="http://localhost:3000,http://localhost:3001")

    # Auth
    access_token_secret: str = Field(default="change-me-access")
    access_token_expiry_minutes: int = Field(default=60 * 24)
    refresh_token_secret: str = Field(default="change-me-refresh")
    refresh_token_expiry_days: int = Field(default=10)
    cookie_max_age_days: int = Field(default=7)

    # S3-compatible storage (DigitalOcean Spaces)
    spaces_bucket: Optional[str] = Field(default=None)
    spaces_region: Optional[str] = Field(default=None)
    spaces_endpoint: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    upload_folder: str = Field(default="uploads")

    # Uploaded image processing
    image_max_width: int = Field(default=800)
    image_quality: int = Field(default=80)

    # Seed value for the user limit singleton
    default_user_limit: int = Field(default=6)
    bcrypt_rounds: int = Field(default=12)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, alias="CATALOG_USE_IN_MEMORY_BACKENDS"
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origin.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
