"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are pinned before anything imports the settings.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("APP_ADMIN_API_KEYS", "admin-key-789")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("TRANSCODE_CLOUD_NAME", "demo-cloud")
os.environ.setdefault("TRANSCODE_API_KEY", "cloud-key")
os.environ.setdefault("TRANSCODE_API_SECRET", "cloud-secret")
os.environ.setdefault("LOG_FORMAT", "json")

from datetime import datetime, timezone  # noqa: E402
from unittest.mock import AsyncMock, Mock  # noqa: E402

import pytest  # noqa: E402

from quotaflow.adapters.documents.in_memory import InMemoryDocumentStore  # noqa: E402
from quotaflow.adapters.object_storage.in_memory import InMemoryObjectStorage  # noqa: E402
from quotaflow.adapters.quota_store.in_memory import InMemoryQuotaStore  # noqa: E402
from quotaflow.adapters.rate_limit.store_backed import StoreBackedRateLimiter  # noqa: E402
from quotaflow.adapters.transcoding.base import AbstractTranscoder, TranscodeResult  # noqa: E402
from quotaflow.services.backoff import BackoffPolicy  # noqa: E402

# 2024-03-09 10:15:00 UTC
FIXED_NOW = datetime(2024, 3, 9, 10, 15, tzinfo=timezone.utc).timestamp()


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=FIXED_NOW)


@pytest.fixture
def quota_store() -> InMemoryQuotaStore:
    return InMemoryQuotaStore()


@pytest.fixture
def limiter(quota_store: InMemoryQuotaStore, clock: Mock) -> StoreBackedRateLimiter:
    return StoreBackedRateLimiter(quota_store, clock=clock)


@pytest.fixture
def documents() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def object_storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage()


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def backoff(sleep: AsyncMock) -> BackoffPolicy:
    return BackoffPolicy(sleep=sleep)


@pytest.fixture
def transcoder() -> AsyncMock:
    mock = AsyncMock(spec=AbstractTranscoder)
    mock.provider_name = "cloudinary"
    mock.transcode.return_value = TranscodeResult(
        playback_url="https://res.cloudinary.com/demo/video/upload/sp_hd/a1.m3u8",
        thumbnail_url="https://res.cloudinary.com/demo/video/upload/so_1/a1.jpg",
        duration_seconds=12.6,
        provider_asset_id="snapflow/processed/a1/a1",
        delivery_mode="upload",
    )
    return mock
