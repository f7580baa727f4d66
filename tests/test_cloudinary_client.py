"""Integration tests for the transcoding adapter layer."""

from unittest.mock import patch

import cloudinary.uploader
import pytest
from cloudinary import exceptions as cloudinary_errors

import quotaflow.adapters.transcoding.factory as factory_mod
from quotaflow.adapters.transcoding import CloudinaryTranscoder, create_transcoder
from quotaflow.adapters.transcoding.cloudinary_client import EAGER_TRANSFORMATIONS, resolve_delivery_mode
from quotaflow.core.config import TranscodeSettings
from quotaflow.core.errors import TranscodingProviderError, ValidationAppError
from quotaflow.services.error_classifier import classify_provider_error

SOURCE_URL = "https://firebasestorage.googleapis.com/v0/b/raw/o/raw-videos%2Fu1%2Fa1.mp4?alt=media&token=t"


def make_client(**kwargs) -> CloudinaryTranscoder:
    return CloudinaryTranscoder(cloud_name="demo", api_key="key-1", api_secret="shh", **kwargs)


@pytest.mark.parametrize(
    ("privacy", "configured", "expected"),
    [
        ("private", "authenticated", "authenticated"),
        ("Private", "authenticated", "authenticated"),
        ("private", "upload", "upload"),
        ("followers-only", "authenticated", "upload"),
        (None, "authenticated", "upload"),
    ],
)
def test_delivery_mode(privacy, configured, expected) -> None:
    assert resolve_delivery_mode(privacy, configured) == expected


class TestCloudinaryTranscoder:
    @pytest.mark.asyncio
    async def test_upload_call_and_eager_urls(self) -> None:
        payload = {
            "public_id": "snapflow/processed/a1/a1",
            "type": "upload",
            "duration": 12.4,
            "eager": [
                {"secure_url": "https://cdn.example/a1.m3u8"},
                {"secure_url": "https://cdn.example/a1.jpg"},
            ],
        }

        with patch.object(cloudinary.uploader, "upload", return_value=payload) as upload:
            result = await make_client().transcode(SOURCE_URL, "a1", privacy="public")

        upload.assert_called_once()
        assert upload.call_args.args == (SOURCE_URL,)
        options = upload.call_args.kwargs
        assert options["resource_type"] == "video"
        assert options["folder"] == "snapflow/processed/a1"
        assert options["public_id"] == "a1"
        assert options["type"] == "upload"
        assert options["access_mode"] == "public"
        assert options["eager"] == EAGER_TRANSFORMATIONS
        assert options["eager_async"] is False
        assert options["cloud_name"] == "demo"
        assert options["api_key"] == "key-1"
        assert options["api_secret"] == "shh"
        assert options["return_error"] is True
        assert "auto_transcription" not in options

        assert result.playback_url == "https://cdn.example/a1.m3u8"
        assert result.thumbnail_url == "https://cdn.example/a1.jpg"
        assert result.duration_seconds == 12.4
        assert result.provider_asset_id == "snapflow/processed/a1/a1"
        assert result.delivery_mode == "upload"

    @pytest.mark.asyncio
    async def test_private_asset_without_eager_urls_uses_delivery_urls(self) -> None:
        client = make_client(private_delivery="authenticated", notification_url="https://hooks/x")

        with patch.object(
            cloudinary.uploader, "upload", return_value={"public_id": "p/a1", "type": "authenticated"}
        ) as upload:
            result = await client.transcode(SOURCE_URL, "a1", privacy="private")

        options = upload.call_args.kwargs
        assert options["type"] == "authenticated"
        assert options["access_mode"] == "authenticated"
        assert options["auto_transcription"] is True
        assert options["notification_url"] == "https://hooks/x"
        assert result.delivery_mode == "authenticated"
        assert result.playback_url.startswith("https://res.cloudinary.com/demo/video/authenticated/")
        assert "sp_hd" in result.playback_url
        assert result.playback_url.endswith("p/a1.m3u8")
        assert "so_1" in result.thumbnail_url
        assert result.thumbnail_url.endswith("p/a1.jpg")
        assert result.duration_seconds is None

    @pytest.mark.asyncio
    async def test_rejected_upload_carries_status_code(self) -> None:
        rejected = {"error": {"message": "Unsupported video format", "http_code": 400}}

        with patch.object(cloudinary.uploader, "upload", return_value=rejected):
            with pytest.raises(TranscodingProviderError) as exc_info:
                await make_client().transcode(SOURCE_URL, "a1")

        error = exc_info.value
        assert error.http_code == 400
        assert error.provider == "cloudinary"
        assert error.message == "Cloudinary upload failed: Unsupported video format"
        assert classify_provider_error(error).error_code == "UNSUPPORTED_FORMAT"

    @pytest.mark.asyncio
    async def test_sdk_error_type_maps_to_status_code(self) -> None:
        with patch.object(
            cloudinary.uploader, "upload", side_effect=cloudinary_errors.RateLimited("Rate limit exceeded")
        ):
            with pytest.raises(TranscodingProviderError) as exc_info:
                await make_client().transcode(SOURCE_URL, "a1")

        assert exc_info.value.http_code == 420
        assert exc_info.value.code == "cloudinary_http_error"
        assert classify_provider_error(exc_info.value).error_code == "RATE_LIMIT"

    @pytest.mark.asyncio
    async def test_timeout_is_classified_as_timeout(self) -> None:
        timeout = cloudinary_errors.GeneralError("Unexpected error - ReadTimeoutError('Read timed out.')")

        with patch.object(cloudinary.uploader, "upload", side_effect=timeout):
            with pytest.raises(TranscodingProviderError) as exc_info:
                await make_client().transcode(SOURCE_URL, "a1")

        assert exc_info.value.code == "cloudinary_timeout"
        info = classify_provider_error(exc_info.value)
        assert info.error_code == "TIMEOUT"
        assert info.retryable is True

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        refused = cloudinary_errors.GeneralError("Socket error: ConnectionRefusedError(111)")

        with patch.object(cloudinary.uploader, "upload", side_effect=refused):
            with pytest.raises(TranscodingProviderError) as exc_info:
                await make_client().transcode(SOURCE_URL, "a1")

        assert exc_info.value.code == "cloudinary_transport_error"
        assert exc_info.value.http_code is None
        assert classify_provider_error(exc_info.value).error_code == "CLOUDINARY_ERROR"


class TestTranscoderFactory:
    def test_creates_cloudinary_client(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            factory_mod.settings,
            "transcode",
            TranscodeSettings(cloud_name="demo", api_key="k", api_secret="s"),
        )

        client = create_transcoder()

        assert isinstance(client, CloudinaryTranscoder)
        assert client.cloud_name == "demo"

    def test_missing_credentials_raise(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            factory_mod.settings,
            "transcode",
            TranscodeSettings(cloud_name="demo", api_key=None, api_secret=None),
        )

        with pytest.raises(ValidationAppError, match="TRANSCODE_API_KEY, TRANSCODE_API_SECRET") as exc:
            create_transcoder()
        assert exc.value.code == "transcode_missing_credentials"

    def test_unknown_provider_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            factory_mod.settings,
            "transcode",
            TranscodeSettings(provider="mux", cloud_name="demo", api_key="k", api_secret="s"),
        )

        with pytest.raises(ValidationAppError) as exc:
            create_transcoder()
        assert exc.value.code == "transcode_unknown_provider"
