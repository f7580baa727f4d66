from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from quotaflow.api.deps import get_flag_service, get_ingestion_service
from quotaflow.core.auth import get_caller, verify_api_key
from quotaflow.core.rate_limit import rate_limit_headers
from quotaflow.schemas.video import Caller, FlagVideoResponse, RetryProcessingResponse
from quotaflow.services.flag_service import FlagService
from quotaflow.services.ingestion_service import IngestionService

router = APIRouter(
    prefix="/videos",
    tags=["Videos"],
    dependencies=[Depends(verify_api_key)],
)


@router.post("/{asset_id}/retry", response_model=RetryProcessingResponse)
async def retry_processing(
    asset_id: str,
    caller: Caller = Depends(get_caller),
    service: IngestionService = Depends(get_ingestion_service),
) -> RetryProcessingResponse:
    """Retry processing of a failed video from its raw upload.

    Only the owner or an admin may retry. Upload quota is not consumed.

    Raises:
        HTTPException via handlers: 403 not allowed, 404 unknown video,
        409 raw upload missing or video already ready, 502 processing failed.
    """
    outcome = await service.retry_processing(asset_id, caller)
    return RetryProcessingResponse(asset_id=asset_id, attempts=outcome.attempts)


@router.post("/{video_id}/flag", response_model=FlagVideoResponse)
async def flag_video(
    video_id: str,
    response: Response,
    caller: Caller = Depends(get_caller),
    service: FlagService = Depends(get_flag_service),
) -> FlagVideoResponse:
    """Flag a video for moderation (10 flags per user per UTC day)."""
    quota = await service.flag_video(caller.user_id, video_id)
    response.headers.update(rate_limit_headers(quota))
    return FlagVideoResponse(video_id=video_id, remaining=quota.remaining)
