"""Tests for the daily-limited flag callable."""

import pytest

from quotaflow.adapters.documents.in_memory import InMemoryDocumentStore
from quotaflow.adapters.rate_limit.store_backed import StoreBackedRateLimiter
from quotaflow.core.errors import NotFoundAppError, RateLimitExceededError, ValidationAppError
from quotaflow.services.flag_service import FlagService


@pytest.fixture
def service(limiter: StoreBackedRateLimiter, documents: InMemoryDocumentStore) -> FlagService:
    documents.put("videos/v1", {"ownerId": "owner", "status": "ready"})
    return FlagService(limiter, documents)


@pytest.mark.asyncio
async def test_flag_marks_video_and_raises_alert(service: FlagService, documents: InMemoryDocumentStore) -> None:
    result = await service.flag_video("u1", "v1")

    video = documents.get("videos/v1")
    assert result.allowed is True
    assert result.remaining == 9
    assert video["flagged"] is True
    assert video["flaggedBy"] == "u1"
    assert video["status"] == "ready"

    [alert] = documents.alerts()
    assert alert["type"] == "content_flagged"
    assert alert["severity"] == "info"
    assert alert["acknowledged"] is False
    assert alert["resourceId"] == "v1"


@pytest.mark.asyncio
async def test_eleventh_flag_of_the_day_is_rejected(service: FlagService) -> None:
    for _ in range(10):
        await service.flag_video("u1", "v1")

    with pytest.raises(RateLimitExceededError) as exc_info:
        await service.flag_video("u1", "v1")

    error = exc_info.value
    # 10:15 UTC -> 13h45m until midnight
    assert error.details["retry_after_seconds"] == 49500
    assert error.details["limit"] == 10
    assert error.message == "Flag limit reached. You can flag videos again in 825 minutes."


@pytest.mark.asyncio
async def test_unknown_video_still_consumes_quota(service: FlagService, limiter: StoreBackedRateLimiter) -> None:
    with pytest.raises(NotFoundAppError):
        await service.flag_video("u1", "missing")

    assert (await limiter.check_and_consume("u1", "flag")).remaining == 8


@pytest.mark.parametrize("video_id", ["", "   "])
@pytest.mark.asyncio
async def test_blank_video_id_is_rejected(service: FlagService, video_id: str) -> None:
    with pytest.raises(ValidationAppError):
        await service.flag_video("u1", video_id)
