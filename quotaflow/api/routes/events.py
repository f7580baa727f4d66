"""Push endpoints for platform events.

Each request is one at-least-once delivery. A 2xx acknowledges it; any other
status makes the platform redeliver. Handled outcomes (denials, failed
processing) are therefore acknowledged with 200.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header

from quotaflow.api.deps import get_ingestion_service, get_rollback_service
from quotaflow.core.auth import verify_api_key
from quotaflow.core.logging import set_event_id
from quotaflow.schemas.events import (
    CommentCreatedEvent,
    FollowCreatedEvent,
    IngestionAck,
    LikeCreatedEvent,
    RollbackAck,
    StorageObjectEvent,
)
from quotaflow.services.ingestion_service import IngestionService
from quotaflow.services.rollback_service import CompensatingRollbackService, RollbackOutcome

router = APIRouter(
    prefix="/events",
    tags=["Events"],
    dependencies=[Depends(verify_api_key)],
)


async def bind_event_id(
    ce_id: Annotated[str | None, Header(alias="ce-id")] = None,
) -> str | None:
    """Attach the CloudEvents delivery id to the request's logs and return it."""
    set_event_id(ce_id)
    return ce_id


def _rollback_ack(outcome: RollbackOutcome) -> RollbackAck:
    return RollbackAck(
        status=outcome.status,
        action=outcome.action,
        resource_id=outcome.resource_id,
        retry_after_seconds=outcome.retry_after_seconds,
    )


@router.post(
    "/storage/finalized",
    response_model=IngestionAck,
    dependencies=[Depends(bind_event_id)],
)
async def storage_object_finalized(
    event: StorageObjectEvent,
    service: IngestionService = Depends(get_ingestion_service),
) -> IngestionAck:
    """Raw object finalized: run the ingestion pipeline for the upload."""
    outcome = await service.handle_object_finalized(event)
    return IngestionAck(
        asset_id=outcome.asset_id,
        status=outcome.status,
        error_code=outcome.error_code,
        attempts=outcome.attempts,
        ignored_reason=outcome.ignored_reason,
    )


@router.post("/likes", response_model=RollbackAck)
async def like_created(
    event: LikeCreatedEvent,
    event_id: str | None = Depends(bind_event_id),
    service: CompensatingRollbackService = Depends(get_rollback_service),
) -> RollbackAck:
    outcome = await service.handle_like_created(
        event.video_id,
        event.user_id,
        event_id=event_id or event.create_time,
    )
    return _rollback_ack(outcome)


@router.post("/comments", response_model=RollbackAck)
async def comment_created(
    event: CommentCreatedEvent,
    event_id: str | None = Depends(bind_event_id),
    service: CompensatingRollbackService = Depends(get_rollback_service),
) -> RollbackAck:
    outcome = await service.handle_comment_created(
        event.comment_id,
        event.author_id,
        event.video_id,
        event_id=event_id or event.create_time,
    )
    return _rollback_ack(outcome)


@router.post("/follows", response_model=RollbackAck)
async def follow_created(
    event: FollowCreatedEvent,
    event_id: str | None = Depends(bind_event_id),
    service: CompensatingRollbackService = Depends(get_rollback_service),
) -> RollbackAck:
    outcome = await service.handle_follow_created(
        event.current_user_id,
        event.target_user_id,
        event_id=event_id or event.create_time,
    )
    return _rollback_ack(outcome)
