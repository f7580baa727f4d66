"""Pydantic schemas for the user-facing video callables."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

Privacy = Literal["public", "private", "followers-only"]


class Caller(BaseModel):
    """Identity of the user invoking a callable."""

    user_id: str = Field(..., min_length=1)
    is_admin: bool = False


class RetryProcessingResponse(BaseModel):
    asset_id: str
    status: Literal["ready"] = "ready"
    attempts: int = Field(..., description="Transcoding attempts used by this retry.")


class FlagVideoResponse(BaseModel):
    success: bool = True
    video_id: str
    remaining: int = Field(..., description="Flags left in the current UTC day.")
