"""Pydantic schemas for pushed platform events and their acknowledgements."""

from __future__ import annotations

from typing import Dict, Literal

from pydantic import BaseModel, ConfigDict, Field


class StorageObjectEvent(BaseModel):
    """Object-finalized notification for a raw upload.

    Mirrors the storage object resource delivered by the push subscription
    (camelCase keys accepted as aliases).
    """

    model_config = ConfigDict(populate_by_name=True)

    bucket: str | None = Field(
        default=None,
        description="Bucket holding the object.",
    )
    name: str | None = Field(
        default=None,
        description="Object path, expected as raw-videos/{userId}/{assetId}.<ext>.",
    )
    content_type: str | None = Field(
        default=None,
        alias="contentType",
        description="MIME type reported by the uploader.",
    )
    size: int | None = Field(
        default=None,
        ge=0,
        description="Object size in bytes.",
    )
    metadata: Dict[str, str] = Field(
        default_factory=dict,
        description="Custom object metadata (privacy, download tokens).",
    )


class _ArtifactCreatedEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    create_time: str | None = Field(
        default=None,
        alias="createTime",
        description="Create time of the artifact document, used when the delivery has no ce-id.",
    )


class LikeCreatedEvent(_ArtifactCreatedEvent):
    video_id: str = Field(..., alias="videoId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)


class CommentCreatedEvent(_ArtifactCreatedEvent):
    comment_id: str = Field(..., alias="commentId", min_length=1)
    author_id: str = Field(..., alias="authorId", min_length=1)
    video_id: str = Field(..., alias="videoId", min_length=1)


class FollowCreatedEvent(_ArtifactCreatedEvent):
    current_user_id: str = Field(
        ...,
        alias="currentUserId",
        min_length=1,
        description="User who follows.",
    )
    target_user_id: str = Field(
        ...,
        alias="targetUserId",
        min_length=1,
        description="User being followed.",
    )


class RollbackAck(BaseModel):
    """Acknowledgement returned for artifact-creation events."""

    status: Literal["confirmed", "compensated", "duplicate", "fail_open"] = Field(
        ..., description="How the event was settled."
    )
    action: str
    resource_id: str
    retry_after_seconds: int | None = None


class IngestionAck(BaseModel):
    """Acknowledgement returned for object-finalized events."""

    asset_id: str | None = None
    status: Literal["ready", "failed", "processing", "ignored"]
    error_code: str | None = None
    attempts: int = 0
    ignored_reason: str | None = Field(
        default=None,
        description="Why the event was skipped (status=ignored only).",
    )
