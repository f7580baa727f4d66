"""Hand-off of video processing results to the notification fan-out.

The core only appends a notification document under the owner; delivery
(push, email) is done elsewhere. Hand-off failures are logged and never
interrupt the ingestion pipeline.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Literal

from quotaflow.adapters.documents.base import AbstractDocumentStore, Document

logger = logging.getLogger(__name__)

VideoNotificationStatus = Literal["ready", "failed"]


def build_video_notification(
    video_id: str,
    status: VideoNotificationStatus,
    *,
    video_title: str | None = None,
    error: str | None = None,
) -> Document:
    """Notification document for a processed or failed video."""
    safe_title = (video_title or "").strip()
    if status == "ready":
        title = "Video ready"
        body = (
            f'Your video "{safe_title}" is ready to watch.'
            if safe_title
            else "Your video is ready to watch."
        )
    else:
        title = "Video processing failed"
        body = (
            f'Your video "{safe_title}" failed to process. Tap to retry.'
            if safe_title
            else "Your video failed to process. Tap to retry."
        )

    payload: Document = {"route": "video", "videoId": video_id, "status": status}
    if status == "failed" and error:
        payload["error"] = error

    return {
        "type": "video",
        "actorUserId": "system",
        "videoId": video_id,
        "title": title,
        "body": body,
        "read": False,
        "createdAt": datetime.now(timezone.utc),
        "payload": payload,
    }


class VideoNotifier:
    """Appends video notifications to the owner's notification feed."""

    def __init__(self, documents: AbstractDocumentStore) -> None:
        self.documents = documents

    async def notify(
        self,
        owner_id: str | None,
        video_id: str,
        status: VideoNotificationStatus,
        *,
        video_title: str | None = None,
        error: str | None = None,
    ) -> None:
        if not owner_id or not video_id:
            return
        notification = build_video_notification(
            video_id,
            status,
            video_title=video_title,
            error=error,
        )
        try:
            await self.documents.add_notification(owner_id, notification)
        except Exception as exc:
            logger.warning(
                "notification.handoff_failed",
                extra={
                    "video_id": video_id,
                    "owner_id": owner_id,
                    "status": status,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
