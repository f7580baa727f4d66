"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys (event push + gateway)",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated API keys whose callers act as admins",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class QuotaSettings(BaseSettings):
    """Per-user quota record persistence."""

    collection: str = Field(
        "rate_limits",
        description="Collection holding one quota record per user",
    )
    record_ttl_days: int = Field(
        30,
        description="Retention applied to the quota record's ttl field",
        ge=1,
    )
    max_transaction_attempts: int = Field(
        25,
        description="Firestore transaction attempts before giving up (fail-open)",
        ge=1,
    )
    sagas_collection: str = Field(
        "rate_limit_sagas",
        description="Collection recording compensation progress per artifact delivery",
    )
    saga_ttl_days: int = Field(
        7,
        description="Retention applied to the saga record's ttl field",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_",
        case_sensitive=False,
    )


class IngestionSettings(BaseSettings):
    """Raw upload ingestion pipeline."""

    raw_prefix: str = Field(
        "raw-videos",
        description="Object prefix of raw uploads: {prefix}/{userId}/{assetId}.<ext>",
    )
    max_attempts: int = Field(
        3,
        description="Total transcoding attempts per asset",
        ge=1,
    )
    base_delay_seconds: float = Field(
        1.5,
        description="Backoff delay after the first failed attempt",
        ge=0,
    )
    backoff_multiplier: float = Field(
        2.0,
        description="Backoff growth factor between attempts",
        ge=1,
    )
    signed_url_ttl_seconds: int = Field(
        1800,
        description="Lifetime of the fallback signed URL handed to the provider",
        ge=60,
    )
    default_bucket: str | None = Field(
        None,
        description="Bucket used by the retry entry point when the asset has none recorded",
    )

    model_config = SettingsConfigDict(
        env_prefix="INGEST_",
        case_sensitive=False,
    )


class TranscodeSettings(BaseSettings):
    """Transcoding provider configuration.

    Credentials are validated when the client is built, not at import time,
    so event handlers that never transcode can start without them.
    """

    provider: str = Field(
        "cloudinary",
        description="Transcoding provider name",
    )
    cloud_name: str | None = Field(None, description="Cloudinary cloud name")
    api_key: str | None = Field(None, description="Cloudinary API key")
    api_secret: str | None = Field(None, description="Cloudinary API secret")
    private_delivery: Literal["upload", "authenticated"] = Field(
        "upload",
        description="Delivery type for privacy='private' assets",
    )
    folder_prefix: str = Field(
        "snapflow/processed",
        description="Folder under which processed assets are stored",
    )
    notification_url: str | None = Field(
        None,
        description="Webhook the provider calls when auto-transcription completes",
    )
    base_url: str = Field(
        "https://api.cloudinary.com",
        description="Provider API endpoint",
    )
    timeout_seconds: float = Field(
        300.0,
        description="Upload request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="TRANSCODE_",
        case_sensitive=False,
    )


class StorageSettings(BaseSettings):
    """Document store and object storage backends."""

    backend: Literal["memory", "gcp"] = Field(
        "memory",
        description="memory for local runs/tests, gcp for Firestore + Cloud Storage",
    )
    project_id: str | None = Field(None, description="GCP project id")
    videos_collection: str = Field("videos")
    alerts_collection: str = Field("admin_alerts")
    users_collection: str = Field("users")

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int | None = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (None disables rotation)",
    )
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Nested settings are created via default_factory so env loading works.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    quota: QuotaSettings = Field(default_factory=QuotaSettings)
    ingest: IngestionSettings = Field(default_factory=IngestionSettings)
    transcode: TranscodeSettings = Field(default_factory=TranscodeSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
