"""
Tubely Configuration Management Module

This module provides configuration management for the Tubely backend using
Pydantic Settings. It loads and validates all environment variables required for:
- Application settings (name, environment, debug mode, logging)
- Bearer JWT validation
- Video record store (MongoDB or in-memory)
- Media persistence backends (local disk, in-memory, S3/MinIO)
- Upload size budgets
- ffmpeg/ffprobe tooling used to prepare videos

All settings support environment variable overrides and .env file loading with
validation and type safety.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BYTES_PER_MIB = 1024 * 1024

# Names accepted by the storage backend factory
STORAGE_BACKENDS = {"local", "memory", "s3"}

# Names accepted for the video record store
RECORD_STORES = {"mongodb", "memory"}


class Settings(BaseSettings):
    """
    Configuration settings for the Tubely backend.

    This class uses Pydantic Settings to load configuration from environment
    variables and .env files with full type validation.

    Configuration Categories:
    - Application: Core app settings like name, environment, debug mode
    - Auth: JWT secret, issuer and token lifetime
    - MongoDB: Database connection URI and connection pool settings
    - Storage: Backend per upload kind, assets root and S3/MinIO settings
    - Upload: Size budgets for thumbnails and videos
    - Media tooling: ffmpeg and ffprobe executables, upload temp directory

    Example usage:
        ```python
        from app.config import Settings

        settings = Settings()
        print(f"Thumbnails go to: {settings.thumbnail_storage_backend}")
        ```
    """

    # =========================================================================
    # Application Settings
    # =========================================================================

    app_name: str = Field(
        default="tubely",
        description="Application name displayed in API documentation and logs",
    )

    app_env: str = Field(
        default="development",
        description="Application environment (development, staging, production, testing)",
    )

    debug: bool = Field(default=False, description="Enable debug mode with verbose logging")

    log_level: str = Field(
        default="info", description="Logging level (debug, info, warning, error, critical)"
    )

    json_logs: bool = Field(
        default=False, description="Emit structured JSON logs instead of plain text"
    )

    host: str = Field(default="0.0.0.0", description="Host address for the API server to bind to")

    port: int = Field(default=8091, description="Port number for the API server", ge=1, le=65535)

    public_base_url: str = Field(
        default="http://localhost:8091",
        description="Externally visible base URL used to build local and in-memory asset URLs",
    )

    cors_origins: list[str] = Field(
        default=["http://localhost:8091"],
        description="List of allowed CORS origins for frontend access",
    )

    # =========================================================================
    # Auth Configuration
    # =========================================================================

    secret_key: str = Field(
        default="development-secret-key-change-in-production-32chars",
        description="Secret key for HS256 JWT signing. Must be a secure random string.",
        min_length=32,
    )

    jwt_issuer: str = Field(default="tubely-access", description="Expected JWT issuer claim")

    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")

    jwt_expiration_hours: int = Field(
        default=1, description="Lifetime of issued access tokens in hours", ge=1, le=168
    )

    # =========================================================================
    # Record Store Configuration
    # =========================================================================

    record_store: str = Field(
        default="mongodb", description="Video record store backend (mongodb, memory)"
    )

    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI (e.g., mongodb://localhost:27017)",
    )

    mongodb_db_name: str = Field(default="tubely", description="MongoDB database name")

    mongodb_min_pool_size: int = Field(
        default=1, description="Minimum number of connections in MongoDB connection pool", ge=0
    )

    mongodb_max_pool_size: int = Field(
        default=50, description="Maximum number of connections in MongoDB connection pool", ge=1
    )

    # =========================================================================
    # Media Storage Configuration
    # =========================================================================

    thumbnail_storage_backend: str = Field(
        default="local", description="Where thumbnails are persisted (local, memory, s3)"
    )

    video_storage_backend: str = Field(
        default="s3", description="Where videos are persisted (local, memory, s3)"
    )

    assets_root: str = Field(
        default="./assets", description="Directory for the local filesystem backend"
    )

    s3_endpoint_url: str | None = Field(
        default=None, description="S3-compatible endpoint URL for MinIO (None for AWS S3)"
    )

    s3_access_key_id: str | None = Field(
        default=None, description="S3 access key ID (None to use the default AWS chain)"
    )

    s3_secret_access_key: str | None = Field(
        default=None, description="S3 secret access key (None to use the default AWS chain)"
    )

    s3_bucket_name: str = Field(default="tubely-media", description="S3 bucket for media")

    s3_region: str = Field(default="us-east-1", description="AWS region for the S3 bucket")

    s3_public_base_url: str | None = Field(
        default=None,
        description="Base URL (e.g. a CDN distribution) used to build public object URLs",
    )

    s3_presign_urls: bool = Field(
        default=True,
        description="Serve S3-backed media through presigned URLs instead of public URLs",
    )

    presigned_url_expiration_seconds: int = Field(
        default=900,
        description="Expiration time for presigned download URLs in seconds (15 minutes)",
        ge=60,
        le=86400,
    )

    # =========================================================================
    # Upload Budgets
    # =========================================================================

    max_thumbnail_size_mb: int = Field(
        default=10, description="Maximum thumbnail upload size in MiB", ge=1
    )

    max_video_size_mb: int = Field(
        default=1024, description="Maximum video upload size in MiB (1 GiB)", ge=1
    )

    # =========================================================================
    # Media Tooling
    # =========================================================================

    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg executable")

    ffprobe_path: str = Field(default="ffprobe", description="ffprobe executable")

    upload_temp_dir: str | None = Field(
        default=None,
        description="Directory for spooled video uploads (None for the system temp directory)",
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

    @field_validator("thumbnail_storage_backend", "video_storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Validate that a storage backend name is supported."""
        normalized = v.lower()
        if normalized not in STORAGE_BACKENDS:
            raise ValueError(
                f"Invalid storage backend '{v}'. Must be one of: {', '.join(sorted(STORAGE_BACKENDS))}"
            )
        return normalized

    @field_validator("record_store")
    @classmethod
    def validate_record_store(cls, v: str) -> str:
        """Validate that the record store name is supported."""
        normalized = v.lower()
        if normalized not in RECORD_STORES:
            raise ValueError(
                f"Invalid record_store '{v}'. Must be one of: {', '.join(sorted(RECORD_STORES))}"
            )
        return normalized

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Only symmetric HMAC algorithms are supported for locally issued tokens."""
        valid_algorithms = {"HS256", "HS384", "HS512"}
        if v.upper() not in valid_algorithms:
            raise ValueError(
                f"Invalid jwt_algorithm '{v}'. Must be one of: {', '.join(sorted(valid_algorithms))}"
            )
        return v.upper()

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string if provided as string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("public_base_url", "s3_public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        """Base URLs are joined with paths, so drop any trailing slash."""
        return v.rstrip("/") if v else v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def max_thumbnail_size_bytes(self) -> int:
        """Thumbnail budget in bytes."""
        return self.max_thumbnail_size_mb * BYTES_PER_MIB

    @property
    def max_video_size_bytes(self) -> int:
        """Video budget in bytes."""
        return self.max_video_size_mb * BYTES_PER_MIB

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get the global Settings instance.

    The @lru_cache decorator ensures that the Settings object is created only
    once on first call, and subsequent calls return the cached instance without
    re-reading environment variables or .env files. The function doubles as a
    FastAPI dependency, so tests replace it through ``dependency_overrides``.

    Returns:
        Settings: The global configuration instance.
    """
    return Settings()
