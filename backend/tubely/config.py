"""
Tubely Configuration Management Module

This module provides configuration management for the Tubely media ingestion
service using Pydantic Settings. It loads and validates all environment
variables required for:
- Application settings (name, environment, debug mode, logging)
- MongoDB connection and pooling for the video record store
- S3-compatible object storage for published media
- Bearer JWT verification
- Media ingestion limits, staging directory and external media tools
- Thumbnail storage strategy selection

All settings support environment variable overrides and .env file loading.
"""

import tempfile

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BYTES_PER_MB = 1024 * 1024

# Supported thumbnail storage strategies
THUMBNAIL_STORAGE_S3 = "s3"
THUMBNAIL_STORAGE_FILESYSTEM = "filesystem"
THUMBNAIL_STORAGE_MEMORY = "memory"
THUMBNAIL_STORAGE_MODES = {
    THUMBNAIL_STORAGE_S3,
    THUMBNAIL_STORAGE_FILESYSTEM,
    THUMBNAIL_STORAGE_MEMORY,
}


class Settings(BaseSettings):
    """
    Configuration settings for the Tubely ingestion service.

    Configuration Categories:
    - Application: Core app settings like name, environment, debug mode
    - MongoDB: Database connection URI and connection pool settings
    - S3: Object storage credentials, bucket and public URL configuration
    - Auth: Secret and issuer used to verify bearer tokens
    - Ingestion: Size ceilings, staging directory, ffprobe/ffmpeg invocation
    - Thumbnails: Storage strategy (s3, filesystem, memory)

    Example usage:
        ```python
        from tubely.config import get_settings

        settings = get_settings()
        print(f"Staging uploads in: {settings.resolved_staging_dir}")
        ```
    """

    # =========================================================================
    # Application Settings
    # =========================================================================

    app_name: str = Field(default="Tubely", description="Application name used in docs and logs")

    app_env: str = Field(
        default="development",
        description="Application environment (development, staging, production, testing)",
    )

    debug: bool = Field(default=True, description="Enable debug mode and hot-reload")

    log_level: str = Field(
        default="info", description="Logging level (debug, info, warning, error, critical)"
    )

    json_logs: bool = Field(
        default=False, description="Emit structured JSON logs instead of plain text"
    )

    host: str = Field(default="0.0.0.0", description="Host address for the API server to bind to")

    port: int = Field(default=8091, description="Port number for the API server", ge=1, le=65535)

    cors_origins: list[str] = Field(
        default=["http://localhost:8091"],
        description="List of allowed CORS origins",
    )

    public_base_url: str = Field(
        default="http://localhost:8091",
        description="Externally reachable base URL of this service",
    )

    # =========================================================================
    # MongoDB Configuration
    # =========================================================================

    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI",
    )

    mongodb_db_name: str = Field(default="tubely", description="MongoDB database name")

    mongodb_min_pool_size: int = Field(
        default=5, description="Minimum number of connections in the MongoDB pool", ge=1
    )

    mongodb_max_pool_size: int = Field(
        default=50, description="Maximum number of connections in the MongoDB pool", ge=1
    )

    # =========================================================================
    # S3 Storage Configuration
    # =========================================================================

    s3_endpoint_url: str | None = Field(
        default=None, description="S3-compatible endpoint URL (None for AWS S3)"
    )

    s3_access_key_id: str | None = Field(
        default=None, description="S3 access key ID (None to use the default AWS chain)"
    )

    s3_secret_access_key: str | None = Field(
        default=None, description="S3 secret access key (None to use the default AWS chain)"
    )

    s3_bucket_name: str = Field(default="tubely-media", description="Bucket for published media")

    s3_region: str = Field(default="us-east-1", description="Region of the S3 bucket")

    s3_public_base_url: str | None = Field(
        default=None,
        description="Public base URL for published objects (e.g. a CDN distribution)",
    )

    # =========================================================================
    # Auth Configuration
    # =========================================================================

    jwt_secret: str = Field(
        default="development-jwt-secret-change-in-production",
        description="HS256 secret used to verify bearer tokens",
        min_length=32,
    )

    jwt_issuer: str = Field(default="tubely-access", description="Expected token issuer")

    jwt_expiration_hours: int = Field(
        default=1, description="Lifetime of issued access tokens in hours", ge=1, le=168
    )

    # =========================================================================
    # Ingestion Settings
    # =========================================================================

    video_max_upload_mb: int = Field(
        default=1024, description="Maximum video upload size in megabytes", ge=1
    )

    thumbnail_max_upload_mb: int = Field(
        default=10, description="Maximum thumbnail upload size in megabytes", ge=1
    )

    staging_dir: str | None = Field(
        default=None,
        description="Directory for staged uploads (defaults to the system temp dir)",
    )

    ffprobe_path: str = Field(default="ffprobe", description="ffprobe executable")

    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg executable")

    media_tool_timeout_seconds: int = Field(
        default=600, description="Timeout for a single ffprobe/ffmpeg run", ge=1
    )

    aspect_ratio_tolerance: float = Field(
        default=0.01,
        description="Relative tolerance when matching 16:9 and 9:16",
        ge=0.0,
        lt=0.5,
    )

    # =========================================================================
    # Thumbnail Settings
    # =========================================================================

    thumbnail_storage: str = Field(
        default=THUMBNAIL_STORAGE_S3,
        description="Where thumbnails are kept: s3, filesystem or memory",
    )

    assets_root: str = Field(
        default="assets", description="Directory served at /assets for filesystem thumbnails"
    )

    # =========================================================================
    # Model Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"debug", "info", "warning", "error", "critical"}
        normalized = v.lower()
        if normalized not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {', '.join(valid_levels)}")
        return normalized

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate that app_env is a valid environment name."""
        valid_envs = {"development", "staging", "production", "testing"}
        normalized = v.lower()
        if normalized not in valid_envs:
            raise ValueError(f"Invalid app_env '{v}'. Must be one of: {', '.join(valid_envs)}")
        return normalized

    @field_validator("thumbnail_storage")
    @classmethod
    def validate_thumbnail_storage(cls, v: str) -> str:
        normalized = v.lower()
        if normalized not in THUMBNAIL_STORAGE_MODES:
            raise ValueError(
                f"Invalid thumbnail_storage '{v}'. "
                f"Must be one of: {', '.join(sorted(THUMBNAIL_STORAGE_MODES))}"
            )
        return normalized

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string if provided as string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("public_base_url", "s3_public_base_url", "s3_endpoint_url")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        return v.rstrip("/") if v else v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def video_max_upload_bytes(self) -> int:
        """Video size ceiling in bytes."""
        return self.video_max_upload_mb * BYTES_PER_MB

    @property
    def thumbnail_max_upload_bytes(self) -> int:
        """Thumbnail size ceiling in bytes."""
        return self.thumbnail_max_upload_mb * BYTES_PER_MB

    @property
    def resolved_staging_dir(self) -> Path:
        """
        Directory where upload artifacts are staged.

        Falls back to the platform temp directory when ``staging_dir`` is unset.
        """
        return Path(self.staging_dir or tempfile.gettempdir())


@lru_cache
def get_settings() -> Settings:
    """
    Get the global Settings instance.

    Configuration is read from the environment once and the same instance is
    returned on subsequent calls.
    """
    return Settings()
