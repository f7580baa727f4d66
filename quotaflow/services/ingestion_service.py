"""Raw video ingestion state machine.

Drives a video asset through ``processing -> ready | failed``:

- The object-finalized trigger filters raw uploads. It consumes upload quota
  once per asset and then runs the transcoding attempts.
- Failures are classified. Terminal errors stop at once and delete the raw
  object. Retryable errors back off and try again within the attempt budget.
  Attempts are persisted on the asset, so a re-delivered invocation cannot
  exceed the budget.
- The retry entry point re-opens a failed asset for its owner or an admin,
  after checking that the raw object still exists. It never consumes quota.
"""

from __future__ import annotations

import logging
import math
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Literal, Mapping

from quotaflow.adapters.documents.base import AbstractDocumentStore, Document
from quotaflow.adapters.object_storage.base import (
    AbstractObjectStorage,
    build_download_url,
    extract_download_token,
    is_download_url,
)
from quotaflow.adapters.rate_limit.base import AbstractRateLimiter
from quotaflow.adapters.transcoding.base import AbstractTranscoder
from quotaflow.core.errors import (
    AuthenticationAppError,
    NotFoundAppError,
    PreconditionAppError,
    ProcessingAppError,
    RawAssetMissingError,
)
from quotaflow.schemas.events import StorageObjectEvent
from quotaflow.schemas.video import Caller
from quotaflow.services.backoff import BackoffPolicy
from quotaflow.services.error_classifier import ProviderErrorInfo, describe_failure
from quotaflow.services.notification_service import VideoNotifier

logger = logging.getLogger(__name__)

PRIVACY_VALUES = ("public", "private", "followers-only")
TERMINAL_STATUSES = ("ready", "failed")

RAW_FILE_DELETED_MESSAGE = (
    "Raw video file no longer exists. Cannot retry processing. Please re-upload the video."
)

_DOWNLOAD_URL_BUCKET = re.compile(
    r"https?://firebasestorage\.googleapis\.com/v0/b/([^/]+)/o/", re.IGNORECASE
)

IngestionStatus = Literal["ready", "failed", "processing", "ignored"]


@dataclass(frozen=True)
class IngestionOutcome:
    """How one invocation left the asset.

    Attributes:
        asset_id: Video asset id (None when the event was filtered out early).
        status: Final asset status, or ``ignored`` for filtered events.
        error_code: Error code stored on the asset when failed.
        attempts: Transcoding attempts recorded on the asset.
        ignored_reason: Why the event was skipped.
    """

    asset_id: str | None
    status: IngestionStatus
    error_code: str | None = None
    attempts: int = 0
    ignored_reason: str | None = None


@dataclass(frozen=True)
class RawUpload:
    user_id: str
    asset_id: str
    path: str


def parse_raw_upload_path(path: str | None, prefix: str = "raw-videos") -> RawUpload | None:
    """Parse ``{prefix}/{userId}/{assetId}.<ext>``.

    Examples:
        >>> parse_raw_upload_path("raw-videos/u1/abc.mp4").asset_id
        'abc'
        >>> parse_raw_upload_path("avatars/u1/abc.png") is None
        True
    """
    if not path:
        return None
    pattern = rf"^{re.escape(prefix.strip('/'))}/(?P<user>[^/]+)/(?P<asset>[^/.]+)\.[^/.]+$"
    match = re.match(pattern, path)
    if not match:
        return None
    return RawUpload(user_id=match.group("user"), asset_id=match.group("asset"), path=path)


def normalize_privacy(value: Any) -> str | None:
    if not value:
        return None
    normalized = str(value).strip().lower()
    return normalized if normalized in PRIVACY_VALUES else None


def format_retry_after(seconds: int) -> str:
    """Human readable wait time.

    Minutes (rounded up) above 60 seconds, seconds otherwise.

    Examples:
        >>> format_retry_after(61)
        '2 minutes'
        >>> format_retry_after(60)
        '60 seconds'
        >>> format_retry_after(1)
        '1 second'
    """
    if seconds > 60:
        minutes = math.ceil(seconds / 60)
        return f"{minutes} {'minute' if minutes == 1 else 'minutes'}"
    return f"{seconds} {'second' if seconds == 1 else 'seconds'}"


def bucket_from_download_url(url: str | None) -> str | None:
    if not url:
        return None
    match = _DOWNLOAD_URL_BUCKET.match(url)
    return match.group(1) if match else None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _AttemptFailed(Exception):
    """A classified failed attempt; ``exhausted`` when no retry follows."""

    def __init__(self, info: ProviderErrorInfo, *, exhausted: bool) -> None:
        super().__init__(info.user_message)
        self.info = info
        self.exhausted = exhausted


class IngestionService:
    """Processes raw uploads into playable assets."""

    def __init__(
        self,
        *,
        limiter: AbstractRateLimiter,
        documents: AbstractDocumentStore,
        storage: AbstractObjectStorage,
        transcoder: AbstractTranscoder,
        backoff: BackoffPolicy | None = None,
        notifier: VideoNotifier | None = None,
        raw_prefix: str = "raw-videos",
        signed_url_ttl_seconds: int = 1800,
        default_bucket: str | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the service with its collaborators.

        Args:
            limiter: Rate limiter consulted for the ``upload`` action.
            documents: Store holding video assets, alerts and notifications.
            storage: Object storage holding raw uploads.
            transcoder: Transcoding provider client.
            backoff: Attempt budget and delays (defaults to 3 attempts, 1.5s, x2).
            notifier: Notification hand-off (defaults to one over ``documents``).
            raw_prefix: Object prefix of raw uploads.
            signed_url_ttl_seconds: Lifetime of fallback signed URLs.
            default_bucket: Bucket for retries of assets with no bucket recorded.
            monotonic: Clock used to measure processing duration.
        """
        self.limiter = limiter
        self.documents = documents
        self.storage = storage
        self.transcoder = transcoder
        self.backoff = backoff or BackoffPolicy()
        self.notifier = notifier or VideoNotifier(documents)
        self._raw_prefix = raw_prefix
        self._signed_url_ttl = signed_url_ttl_seconds
        self._default_bucket = default_bucket
        self._monotonic = monotonic

    # Object-finalized trigger

    async def handle_object_finalized(self, event: StorageObjectEvent) -> IngestionOutcome:
        """Handle a finalized raw upload.

        Returns:
            IngestionOutcome. Quota denials and processing failures are
            reported through the outcome and the asset, never raised.
        """
        upload = parse_raw_upload_path(event.name, self._raw_prefix)
        if upload is None:
            logger.debug("ingestion.ignored", extra={"reason": "path_mismatch", "object_name": event.name})
            return IngestionOutcome(asset_id=None, status="ignored", ignored_reason="path_mismatch")

        content_type = (event.content_type or "").lower()
        if not content_type.startswith("video/"):
            logger.debug(
                "ingestion.ignored",
                extra={"reason": "not_video", "object_name": event.name, "content_type": content_type},
            )
            return IngestionOutcome(asset_id=upload.asset_id, status="ignored", ignored_reason="not_video")

        if not event.bucket:
            logger.error("ingestion.missing_bucket", extra={"object_name": event.name})
            return IngestionOutcome(asset_id=upload.asset_id, status="ignored", ignored_reason="missing_bucket")

        log_extra = {"asset_id": upload.asset_id, "user_id": upload.user_id, "raw_path": upload.path}
        video = await self.documents.get_video(upload.asset_id) or {}

        status = video.get("status")
        if status in TERMINAL_STATUSES:
            logger.info("ingestion.ignored", extra={**log_extra, "reason": "already_terminal", "status": status})
            return IngestionOutcome(
                asset_id=upload.asset_id,
                status="ignored",
                attempts=int(video.get("processingAttempts") or 0),
                ignored_reason="already_terminal",
            )

        privacy = (
            normalize_privacy(event.metadata.get("privacy"))
            or normalize_privacy(event.metadata.get("x-goog-meta-privacy"))
            or normalize_privacy(video.get("privacy"))
            or "public"
        )

        if not video.get("uploadQuotaConsumed"):
            quota = await self.limiter.check_and_consume(upload.user_id, "upload")
            if not quota.allowed:
                return await self._reject_over_quota(upload, event.bucket, quota.retry_after_seconds or 0)

        fields: Document = {
            "status": "processing",
            "rawPath": upload.path,
            "rawBucket": event.bucket,
            "privacy": privacy,
            "uploadQuotaConsumed": True,
        }
        if not video.get("ownerId"):
            fields["ownerId"] = upload.user_id
        await self.documents.update_video(upload.asset_id, fields)

        attempts_so_far = int(video.get("processingAttempts") or 0)
        if attempts_so_far >= self.backoff.max_attempts:
            return await self._fail_exhausted(upload, video.get("title"), attempts_so_far)

        logger.info("ingestion.started", extra={**log_extra, "privacy": privacy, "attempts_so_far": attempts_so_far})
        return await self._run_attempts(
            asset_id=upload.asset_id,
            owner_id=video.get("ownerId") or upload.user_id,
            bucket=event.bucket,
            raw_path=upload.path,
            readable_url=None,
            metadata=event.metadata,
            privacy=privacy,
            video_title=video.get("title"),
            attempts_so_far=attempts_so_far,
        )

    async def _reject_over_quota(self, upload: RawUpload, bucket: str, retry_after: int) -> IngestionOutcome:
        await self._delete_raw(bucket, upload.path, asset_id=upload.asset_id, reason="rate_limit_exceeded")

        message = f"Rate limit exceeded. You can upload {format_retry_after(retry_after)} from now."
        now = _utcnow()
        await self.documents.update_video(
            upload.asset_id,
            {
                "status": "failed",
                "error": message,
                "errorCode": "RATE_LIMIT_EXCEEDED",
                "retryAfterSeconds": retry_after,
                "lastErrorAt": now,
            },
        )
        await self.documents.append_alert(
            {
                "type": "rate_limit_violation",
                "severity": "warning",
                "action": "upload",
                "userId": upload.user_id,
                "resourceId": upload.asset_id,
                "message": message,
                "retryAfter": retry_after,
                "createdAt": now,
            }
        )
        logger.warning(
            "ingestion.rate_limited",
            extra={"asset_id": upload.asset_id, "user_id": upload.user_id, "retry_after_s": retry_after},
        )
        return IngestionOutcome(asset_id=upload.asset_id, status="failed", error_code="RATE_LIMIT_EXCEEDED")

    async def _fail_exhausted(self, upload: RawUpload, video_title: str | None, attempts: int) -> IngestionOutcome:
        message = f"Video processing did not complete after {attempts} attempts. Please retry."
        await self.documents.update_video(
            upload.asset_id,
            {
                "status": "failed",
                "error": message,
                "errorCode": "RETRIES_EXHAUSTED",
                "lastErrorAt": _utcnow(),
            },
        )
        logger.error(
            "ingestion.retries_exhausted",
            extra={"asset_id": upload.asset_id, "user_id": upload.user_id, "attempts": attempts},
        )
        await self.notifier.notify(upload.user_id, upload.asset_id, "failed", video_title=video_title, error=message)
        return IngestionOutcome(
            asset_id=upload.asset_id,
            status="failed",
            error_code="RETRIES_EXHAUSTED",
            attempts=attempts,
        )

    # Retry entry point

    async def retry_processing(self, asset_id: str, caller: Caller) -> IngestionOutcome:
        """Re-run processing of an asset from its stored raw object.

        Raises:
            NotFoundAppError: Unknown asset.
            PreconditionAppError: Asset is ready or has no owner/raw path.
            AuthenticationAppError: Caller is neither owner nor admin.
            RawAssetMissingError: The raw object no longer exists.
            ProcessingAppError: Processing ended in ``failed``.
        """
        video = await self.documents.get_video(asset_id)
        if video is None:
            raise NotFoundAppError(
                code="video_not_found",
                message="Video not found",
                details={"asset_id": asset_id},
            )

        owner_id = video.get("ownerId")
        raw_path = video.get("rawPath")
        if not owner_id or not raw_path:
            raise PreconditionAppError(
                code="missing_raw_video_path",
                message="Missing raw video path",
                details={"asset_id": asset_id},
            )

        if not caller.is_admin and caller.user_id != owner_id:
            logger.warning(
                "ingestion.retry_forbidden",
                extra={"asset_id": asset_id, "user_id": caller.user_id},
            )
            raise AuthenticationAppError(
                code="retry_not_allowed",
                message="Only the owner or an admin can retry processing",
            )

        if video.get("status") == "ready":
            raise PreconditionAppError(
                code="video_already_ready",
                message="Video is already processed",
                details={"asset_id": asset_id},
            )

        raw_video_url = video.get("rawVideoUrl")
        bucket = video.get("rawBucket") or bucket_from_download_url(raw_video_url) or self._default_bucket
        if not bucket:
            raise PreconditionAppError(
                code="missing_raw_video_bucket",
                message="Cannot resolve the bucket of the raw video",
                details={"asset_id": asset_id, "raw_path": raw_path},
            )

        await self.documents.update_video(
            asset_id,
            {
                "status": "processing",
                "error": None,
                "errorCode": None,
                "lastErrorAt": None,
                "processingAttempts": 0,
            },
        )
        logger.info(
            "ingestion.retry_requested",
            extra={"asset_id": asset_id, "user_id": caller.user_id, "is_admin": caller.is_admin},
        )

        if not await self.storage.exists(bucket, raw_path):
            await self.documents.update_video(
                asset_id,
                {
                    "status": "failed",
                    "error": RAW_FILE_DELETED_MESSAGE,
                    "errorCode": "RAW_FILE_DELETED",
                    "lastErrorAt": _utcnow(),
                },
            )
            logger.error("ingestion.raw_missing", extra={"asset_id": asset_id, "raw_path": raw_path})
            await self.notifier.notify(
                owner_id, asset_id, "failed", video_title=video.get("title"), error=RAW_FILE_DELETED_MESSAGE
            )
            raise RawAssetMissingError(
                code="raw_file_deleted",
                message=RAW_FILE_DELETED_MESSAGE,
                details={"asset_id": asset_id, "raw_path": raw_path},
            )

        outcome = await self._run_attempts(
            asset_id=asset_id,
            owner_id=owner_id,
            bucket=bucket,
            raw_path=raw_path,
            readable_url=raw_video_url if is_download_url(raw_video_url) else None,
            metadata=None,
            privacy=normalize_privacy(video.get("privacy")) or "public",
            video_title=video.get("title"),
            attempts_so_far=0,
        )
        if outcome.status != "ready":
            refreshed = await self.documents.get_video(asset_id) or {}
            raise ProcessingAppError(
                code="video_processing_failed",
                message=refreshed.get("error") or "Video processing failed",
                details={"asset_id": asset_id, "attempts": outcome.attempts, "code": outcome.error_code or ""},
            )
        return outcome

    # Shared pipeline

    async def _resolve_readable_url(
        self,
        bucket: str,
        path: str,
        metadata: Mapping[str, str] | None,
    ) -> str:
        token = extract_download_token(metadata)
        if token is None:
            try:
                token = extract_download_token(await self.storage.get_metadata(bucket, path))
            except Exception as exc:
                logger.warning(
                    "ingestion.metadata_unavailable",
                    extra={"raw_path": path, "error_type": type(exc).__name__, "error_msg": str(exc)},
                )
        if token:
            return build_download_url(bucket, path, token)
        return await self.storage.signed_url(bucket, path, ttl_seconds=self._signed_url_ttl)

    async def _run_attempts(
        self,
        *,
        asset_id: str,
        owner_id: str,
        bucket: str,
        raw_path: str,
        readable_url: str | None,
        metadata: Mapping[str, str] | None,
        privacy: str,
        video_title: str | None,
        attempts_so_far: int,
    ) -> IngestionOutcome:
        """Resolve the source URL and transcode, within the attempt budget.

        Each attempt resolves the readable URL first (unless already known),
        so a URL signing failure is classified and counted like a provider
        failure.
        """
        attempt = attempts_so_far
        source_url = readable_url
        try:
            async for retry_attempt in self.backoff.retrying(
                attempts_used=attempts_so_far,
                retry_if=lambda exc: isinstance(exc, _AttemptFailed) and not exc.exhausted,
            ):
                with retry_attempt:
                    attempt += 1
                    await self.documents.update_video(asset_id, {"processingAttempts": attempt})
                    started = self._monotonic()
                    try:
                        if source_url is None:
                            source_url = await self._resolve_readable_url(bucket, raw_path, metadata)
                            if is_download_url(source_url):
                                await self.documents.update_video(asset_id, {"rawVideoUrl": source_url})
                        result = await self.transcoder.transcode(source_url, asset_id, privacy=privacy)
                    except Exception as exc:
                        raise await self._record_failure(asset_id, attempt, exc) from exc
        except _AttemptFailed as failure:
            await self.notifier.notify(
                owner_id, asset_id, "failed", video_title=video_title, error=failure.info.user_message
            )
            # Exhausted retryable failures keep the raw object for a manual retry.
            if not failure.info.retryable:
                await self._delete_raw(bucket, raw_path, asset_id=asset_id, reason="terminal_failure")
            return IngestionOutcome(
                asset_id=asset_id,
                status="failed",
                error_code=failure.info.error_code,
                attempts=attempt,
            )

        processing_duration_ms = int((self._monotonic() - started) * 1000)
        await self.documents.update_video(
            asset_id,
            {
                "hlsUrl": result.playback_url,
                "thumbnailUrl": result.thumbnail_url,
                "durationSeconds": (
                    round(result.duration_seconds) if result.duration_seconds is not None else None
                ),
                "status": "ready",
                "processedAt": _utcnow(),
                "error": None,
                "errorCode": None,
                "lastErrorAt": None,
                "processingDurationMs": processing_duration_ms,
                "assetProviderId": result.provider_asset_id,
                "deliveryMode": result.delivery_mode,
            },
        )
        logger.info(
            "ingestion.ready",
            extra={"asset_id": asset_id, "attempt": attempt, "duration_ms": processing_duration_ms},
        )
        await self.notifier.notify(owner_id, asset_id, "ready", video_title=video_title)
        await self._delete_raw(bucket, raw_path, asset_id=asset_id, reason="processed")
        return IngestionOutcome(asset_id=asset_id, status="ready", attempts=attempt)

    async def _record_failure(self, asset_id: str, attempt: int, exc: Exception) -> _AttemptFailed:
        info = describe_failure(exc, self.transcoder.provider_name)
        exhausted = not info.retryable or not self.backoff.has_attempts_left(attempt)

        await self.documents.update_video(
            asset_id,
            {
                "status": "failed" if exhausted else "processing",
                "error": info.user_message,
                "errorCode": info.error_code,
                "lastErrorAt": _utcnow(),
            },
        )
        logger.error(
            "ingestion.attempt_failed",
            extra={
                "asset_id": asset_id,
                "attempt": attempt,
                "error_code": info.error_code,
                "retryable": info.retryable,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return _AttemptFailed(info, exhausted=exhausted)

    async def _delete_raw(self, bucket: str, path: str, *, asset_id: str, reason: str) -> None:
        try:
            await self.storage.delete(bucket, path)
        except Exception as exc:
            logger.warning(
                "ingestion.raw_delete_failed",
                extra={
                    "asset_id": asset_id,
                    "raw_path": path,
                    "reason": reason,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return
        logger.info("ingestion.raw_deleted", extra={"asset_id": asset_id, "raw_path": path, "reason": reason})
