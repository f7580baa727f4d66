"""Factory pattern for creating transcoder instances."""

from quotaflow.adapters.transcoding.base import AbstractTranscoder
from quotaflow.adapters.transcoding.cloudinary_client import CloudinaryTranscoder
from quotaflow.core.config import settings
from quotaflow.core.errors import ValidationAppError


def create_transcoder() -> AbstractTranscoder:
    """Instantiate the transcoding client for the configured provider.

    Reads configuration from quotaflow.core.config.settings (Pydantic Settings)
    and validates provider-specific requirements.

    Returns:
        AbstractTranscoder: Configured transcoder instance.

    Raises:
        ValidationAppError: If the provider is unknown or misconfigured.
    """
    cfg = settings.transcode
    provider = cfg.provider.lower()

    if provider == "cloudinary":
        missing = [
            name
            for name, value in (
                ("TRANSCODE_CLOUD_NAME", cfg.cloud_name),
                ("TRANSCODE_API_KEY", cfg.api_key),
                ("TRANSCODE_API_SECRET", cfg.api_secret),
            )
            if not value
        ]
        if missing:
            raise ValidationAppError(
                code="transcode_missing_credentials",
                message=f"Cloudinary credentials not set: {', '.join(missing)}",
                details={"hint": "Set the TRANSCODE_* variables in the environment or .env file"},
            )
        return CloudinaryTranscoder(
            cloud_name=cfg.cloud_name,
            api_key=cfg.api_key,
            api_secret=cfg.api_secret,
            folder_prefix=cfg.folder_prefix,
            private_delivery=cfg.private_delivery,
            notification_url=cfg.notification_url,
            base_url=cfg.base_url,
            timeout_seconds=cfg.timeout_seconds,
        )

    raise ValidationAppError(
        code="transcode_unknown_provider",
        message=(
            f"Unknown transcoding provider: '{provider}'. Supported providers: cloudinary"
        ),
    )
