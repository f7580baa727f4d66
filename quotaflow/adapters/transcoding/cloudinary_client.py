"""Cloudinary transcoding adapter.

Wraps the ``cloudinary`` SDK uploader. The provider pulls the raw upload from
``source_url`` and builds the HLS playlist and poster frame synchronously
(eager, non-async), so one call yields final URLs. The SDK is blocking, so
the upload runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import cloudinary.uploader
import cloudinary.utils
from cloudinary import exceptions as cloudinary_errors

from quotaflow.adapters.transcoding.base import AbstractTranscoder, DeliveryMode, TranscodeResult
from quotaflow.core.errors import TranscodingProviderError

logger = logging.getLogger(__name__)

HLS_TRANSFORMATION = "sp_hd"
POSTER_TRANSFORMATION = "so_1/c_fill,h_360,w_640"

# streaming_profile must be the only directive in its transformation
EAGER_TRANSFORMATIONS = f"{HLS_TRANSFORMATION}/m3u8|{POSTER_TRANSFORMATION}/jpg"

# HTTP status behind each SDK exception type
_SDK_ERROR_CODES: dict[type[cloudinary_errors.Error], int] = {
    cloudinary_errors.BadRequest: 400,
    cloudinary_errors.AuthorizationRequired: 401,
    cloudinary_errors.NotAllowed: 403,
    cloudinary_errors.NotFound: 404,
    cloudinary_errors.AlreadyExists: 409,
    cloudinary_errors.RateLimited: 420,
}


def resolve_delivery_mode(privacy: str | None, private_delivery: str) -> DeliveryMode:
    """Delivery type for an asset.

    Only ``private`` assets may use authenticated delivery, and only when it
    is configured; followers-only access is enforced by the API layer.
    """
    if (privacy or "").strip().lower() != "private":
        return "upload"
    return "authenticated" if private_delivery.strip().lower() == "authenticated" else "upload"


class CloudinaryTranscoder(AbstractTranscoder):
    """Client for Cloudinary video uploads with eager HLS renditions."""

    provider_name = "cloudinary"

    def __init__(
        self,
        *,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder_prefix: str = "snapflow/processed",
        private_delivery: str = "upload",
        notification_url: str | None = None,
        base_url: str = "https://api.cloudinary.com",
        timeout_seconds: float = 300.0,
    ) -> None:
        """Initialize the Cloudinary client.

        Credentials are passed with every call rather than through the SDK's
        process-wide ``cloudinary.config``.

        Args:
            cloud_name: Cloudinary cloud name.
            api_key: API key sent with every upload.
            api_secret: Secret the SDK signs uploads with (never sent).
            folder_prefix: Folder under which each asset gets its own folder.
            private_delivery: Delivery type for private assets.
            notification_url: Optional webhook for auto-transcription events.
            base_url: Upload API endpoint.
            timeout_seconds: Timeout for the upload request.
        """
        self.cloud_name = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self._folder_prefix = folder_prefix.strip("/")
        self._private_delivery = private_delivery
        self._notification_url = notification_url
        self._base_url = base_url
        self._timeout = timeout_seconds

    def _upload_options(self, asset_id: str, delivery_mode: DeliveryMode) -> dict[str, Any]:
        options: dict[str, Any] = {
            "resource_type": "video",
            "folder": f"{self._folder_prefix}/{asset_id}",
            "public_id": asset_id,
            "type": delivery_mode,
            "access_mode": "authenticated" if delivery_mode == "authenticated" else "public",
            "eager": EAGER_TRANSFORMATIONS,
            "eager_async": False,
            "cloud_name": self.cloud_name,
            "api_key": self._api_key,
            "api_secret": self._api_secret,
            "upload_prefix": self._base_url,
            "timeout": self._timeout,
            "return_error": True,
        }
        if self._notification_url:
            options["auto_transcription"] = True
            options["notification_url"] = self._notification_url
        return options

    def _delivery_url(self, public_id: str, delivery_mode: str, transformation: str, ext: str) -> str:
        url, _ = cloudinary.utils.cloudinary_url(
            public_id,
            resource_type="video",
            type=delivery_mode,
            raw_transformation=transformation,
            format=ext,
            secure=True,
            force_version=False,
            cloud_name=self.cloud_name,
        )
        return url

    def _provider_error(self, message: str, http_code: int | None, code: str) -> TranscodingProviderError:
        return TranscodingProviderError(
            code=code,
            message=message,
            details={"http_status": http_code, "provider": self.provider_name},
            http_code=http_code,
            provider=self.provider_name,
        )

    async def transcode(
        self,
        source_url: str,
        asset_id: str,
        *,
        privacy: str | None = None,
    ) -> TranscodeResult:
        """Upload ``source_url`` as a video and return delivery URLs.

        Raises:
            TranscodingProviderError: On rejected uploads, timeouts or
                transport failures. Rejections carry the provider's status code.
        """
        delivery_mode = resolve_delivery_mode(privacy, self._private_delivery)
        options = self._upload_options(asset_id, delivery_mode)

        try:
            payload = await asyncio.to_thread(cloudinary.uploader.upload, source_url, **options)
        except cloudinary_errors.Error as exc:
            text = str(exc)
            if "timed out" in text.lower() or "timeout" in text.lower():
                raise self._provider_error(
                    "Cloudinary request timeout while processing the video", None, "cloudinary_timeout"
                ) from exc
            http_code = _SDK_ERROR_CODES.get(type(exc))
            raise self._provider_error(
                f"Cloudinary upload failed: {text}",
                http_code,
                "cloudinary_http_error" if http_code else "cloudinary_transport_error",
            ) from exc

        error = payload.get("error")
        if error:
            raise self._provider_error(
                f"Cloudinary upload failed: {error.get('message') or 'unknown error'}",
                error.get("http_code"),
                "cloudinary_http_error",
            )

        public_id = payload.get("public_id") or f"{options['folder']}/{asset_id}"
        delivered_as = payload.get("type") or delivery_mode
        eager = payload.get("eager") or []
        playback_url = eager[0].get("secure_url") if len(eager) > 0 else None
        thumbnail_url = eager[1].get("secure_url") if len(eager) > 1 else None

        result = TranscodeResult(
            playback_url=playback_url
            or self._delivery_url(public_id, delivered_as, HLS_TRANSFORMATION, "m3u8"),
            thumbnail_url=thumbnail_url
            or self._delivery_url(public_id, delivered_as, POSTER_TRANSFORMATION, "jpg"),
            duration_seconds=payload.get("duration"),
            provider_asset_id=public_id,
            delivery_mode="authenticated" if delivered_as == "authenticated" else "upload",
        )
        logger.info(
            "transcode.completed",
            extra={
                "asset_id": asset_id,
                "provider_asset_id": result.provider_asset_id,
                "delivery_mode": result.delivery_mode,
                "duration_s": result.duration_seconds,
            },
        )
        return result
