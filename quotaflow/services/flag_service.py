"""Content flagging callable backed by the daily ``flag`` quota."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from quotaflow.adapters.documents.base import AbstractDocumentStore
from quotaflow.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from quotaflow.core.errors import NotFoundAppError, RateLimitExceededError, ValidationAppError
from quotaflow.services.ingestion_service import format_retry_after

logger = logging.getLogger(__name__)


class FlagService:
    """Marks videos as flagged for moderator review."""

    def __init__(self, limiter: AbstractRateLimiter, documents: AbstractDocumentStore) -> None:
        self.limiter = limiter
        self.documents = documents

    async def flag_video(self, user_id: str, video_id: str) -> RateLimitResult:
        """Flag ``video_id`` on behalf of ``user_id``.

        The quota is consumed before the video lookup, so flagging unknown
        videos still counts against the caller.

        Returns:
            The allowing RateLimitResult (carries the remaining budget).

        Raises:
            ValidationAppError: Empty video id.
            RateLimitExceededError: The caller exhausted today's flags.
            NotFoundAppError: Unknown video.
        """
        if not video_id or not video_id.strip():
            raise ValidationAppError(code="missing_video_id", message="videoId required")
        video_id = video_id.strip()

        quota = await self.limiter.check_and_consume(user_id, "flag")
        if not quota.allowed:
            retry_after = quota.retry_after_seconds or 0
            raise RateLimitExceededError(
                code="flag_rate_limited",
                message=f"Flag limit reached. You can flag videos again in {format_retry_after(retry_after)}.",
                details={
                    "retry_after_seconds": retry_after,
                    "reset_at": quota.reset_at,
                    "limit": quota.limit,
                    "action": "flag",
                },
            )

        video = await self.documents.get_video(video_id)
        if video is None:
            raise NotFoundAppError(
                code="video_not_found",
                message="Video not found",
                details={"asset_id": video_id},
            )

        now = datetime.now(timezone.utc)
        await self.documents.update_video(
            video_id,
            {"flagged": True, "flaggedAt": now, "flaggedBy": user_id},
        )
        await self.documents.append_alert(
            {
                "type": "content_flagged",
                "severity": "info",
                "userId": user_id,
                "resourceId": video_id,
                "message": f"Video {video_id} was flagged by user {user_id}",
                "acknowledged": False,
                "createdAt": now,
            }
        )
        logger.info("flag.recorded", extra={"video_id": video_id, "user_id": user_id, "remaining": quota.remaining})
        return quota
