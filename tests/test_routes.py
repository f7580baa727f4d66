"""Tests for the event push endpoints and the video callables.

Services are wired to in-memory adapters through
``app.dependency_overrides``; the transcoder is a mock.
"""

from collections.abc import Iterator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from quotaflow.adapters.documents.in_memory import InMemoryDocumentStore
from quotaflow.adapters.object_storage.in_memory import InMemoryObjectStorage
from quotaflow.adapters.rate_limit.store_backed import StoreBackedRateLimiter
from quotaflow.api.deps import get_flag_service, get_ingestion_service, get_rollback_service
from quotaflow.core.errors import TranscodingProviderError
from quotaflow.main import app
from quotaflow.services.backoff import BackoffPolicy
from quotaflow.services.flag_service import FlagService
from quotaflow.services.ingestion_service import IngestionService
from quotaflow.services.rollback_service import CompensatingRollbackService

API_KEY = {"X-API-Key": "test-api-key-123"}
ADMIN_KEY = {"X-API-Key": "admin-key-789"}
BUCKET = "snapflow-raw"
RAW_PATH = "raw-videos/u1/a1.mp4"


@pytest.fixture
def client(
    limiter: StoreBackedRateLimiter,
    documents: InMemoryDocumentStore,
    object_storage: InMemoryObjectStorage,
    transcoder: AsyncMock,
    backoff: BackoffPolicy,
) -> Iterator[TestClient]:
    """Test client with services bound to the shared in-memory fixtures."""
    app.dependency_overrides[get_rollback_service] = lambda: CompensatingRollbackService(limiter, documents)
    app.dependency_overrides[get_ingestion_service] = lambda: IngestionService(
        limiter=limiter,
        documents=documents,
        storage=object_storage,
        transcoder=transcoder,
        backoff=backoff,
    )
    app.dependency_overrides[get_flag_service] = lambda: FlagService(limiter, documents)
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestAuthentication:
    def test_events_require_api_key(self, client: TestClient) -> None:
        response = client.post("/v1/events/likes", json={"videoId": "v1", "userId": "u1"})

        assert response.status_code == 403
        assert response.json()["detail"] == "Missing API key. Provide X-API-Key header."

    def test_invalid_api_key(self, client: TestClient) -> None:
        response = client.post(
            "/v1/events/likes",
            json={"videoId": "v1", "userId": "u1"},
            headers={"X-API-Key": "nope"},
        )

        assert response.status_code == 403

    def test_callable_requires_signed_in_user(self, client: TestClient) -> None:
        response = client.post("/v1/videos/v1/flag", headers=API_KEY)

        assert response.status_code == 401

    def test_health_is_public(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestEventEndpoints:
    def test_like_within_limit_is_confirmed(self, client: TestClient, documents: InMemoryDocumentStore) -> None:
        documents.put("videos/v1", {"likesCount": 1})
        documents.put("videos/v1/likes/u1", {"userId": "u1"})

        response = client.post("/v1/events/likes", json={"videoId": "v1", "userId": "u1"}, headers=API_KEY)

        assert response.status_code == 200
        assert response.json() == {
            "status": "confirmed",
            "action": "like",
            "resource_id": "v1",
            "retry_after_seconds": None,
        }

    def test_like_redelivery_and_relike_are_told_apart(
        self,
        client: TestClient,
        documents: InMemoryDocumentStore,
    ) -> None:
        documents.put("videos/v1", {"likesCount": 1})
        documents.put("videos/v1/likes/u1", {"userId": "u1"})
        body = {"videoId": "v1", "userId": "u1"}

        first = client.post("/v1/events/likes", json=body, headers={**API_KEY, "ce-id": "evt-1"})
        redelivered = client.post("/v1/events/likes", json=body, headers={**API_KEY, "ce-id": "evt-1"})
        relike = client.post("/v1/events/likes", json=body, headers={**API_KEY, "ce-id": "evt-2"})

        assert [r.json()["status"] for r in (first, redelivered, relike)] == ["confirmed", "duplicate", "confirmed"]
        assert documents.get("rate_limit_sagas/videos__v1__likes__u1__evt-2")["state"] == "confirmed"

    def test_like_without_ce_id_is_keyed_by_create_time(
        self,
        client: TestClient,
        documents: InMemoryDocumentStore,
    ) -> None:
        documents.put("videos/v1/likes/u1", {"userId": "u1"})
        body = {"videoId": "v1", "userId": "u1", "createTime": "2024-03-09T10:15:00Z"}

        first = client.post("/v1/events/likes", json=body, headers=API_KEY)
        again = client.post("/v1/events/likes", json=body, headers=API_KEY)

        assert first.json()["status"] == "confirmed"
        assert again.json()["status"] == "duplicate"

    def test_comment_over_limit_is_compensated(self, client: TestClient, documents: InMemoryDocumentStore) -> None:
        documents.put("videos/v1", {"commentsCount": 0})
        for n in range(21):
            documents.put(f"comments/c{n}", {"authorId": "u1"})
            response = client.post(
                "/v1/events/comments",
                json={"commentId": f"c{n}", "authorId": "u1", "videoId": "v1"},
                headers={**API_KEY, "ce-id": f"evt-{n}"},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "compensated"
        assert body["retry_after_seconds"] == 2700
        assert documents.get("comments/c20") is None

    def test_follow_event(self, client: TestClient) -> None:
        response = client.post(
            "/v1/events/follows",
            json={"currentUserId": "me", "targetUserId": "them"},
            headers=API_KEY,
        )

        assert response.status_code == 200
        assert response.json()["resource_id"] == "them"

    def test_malformed_event_is_rejected(self, client: TestClient) -> None:
        response = client.post("/v1/events/likes", json={"videoId": "v1"}, headers=API_KEY)

        assert response.status_code == 422

    def test_storage_finalized_processes_upload(
        self,
        client: TestClient,
        documents: InMemoryDocumentStore,
        object_storage: InMemoryObjectStorage,
    ) -> None:
        documents.put("videos/a1", {"ownerId": "u1"})
        object_storage.put(BUCKET, RAW_PATH)

        response = client.post(
            "/v1/events/storage/finalized",
            json={"bucket": BUCKET, "name": RAW_PATH, "contentType": "video/mp4", "metadata": {}},
            headers=API_KEY,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "ready"
        assert documents.get("videos/a1")["status"] == "ready"

    def test_storage_finalized_ignores_other_objects(self, client: TestClient) -> None:
        response = client.post(
            "/v1/events/storage/finalized",
            json={"bucket": BUCKET, "name": "thumbnails/u1/x.jpg", "contentType": "image/jpeg"},
            headers=API_KEY,
        )

        assert response.status_code == 200
        assert response.json()["ignored_reason"] == "path_mismatch"


class TestFlagEndpoint:
    def test_flag_sets_rate_limit_headers(self, client: TestClient, documents: InMemoryDocumentStore) -> None:
        documents.put("videos/v1", {"ownerId": "owner"})

        response = client.post("/v1/videos/v1/flag", headers={**API_KEY, "X-User-Id": "u1"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "video_id": "v1", "remaining": 9}
        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "9"

    def test_eleventh_flag_returns_429(self, client: TestClient, documents: InMemoryDocumentStore) -> None:
        documents.put("videos/v1", {"ownerId": "owner"})
        headers = {**API_KEY, "X-User-Id": "u1"}
        for _ in range(10):
            client.post("/v1/videos/v1/flag", headers=headers)

        response = client.post("/v1/videos/v1/flag", headers=headers)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "49500"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        error = response.json()["error"]
        assert error["code"] == "flag_rate_limited"
        assert "request_id" in error

    def test_unknown_video_returns_404(self, client: TestClient) -> None:
        response = client.post("/v1/videos/ghost/flag", headers={**API_KEY, "X-User-Id": "u1"})

        assert response.status_code == 404


class TestRetryEndpoint:
    @pytest.fixture(autouse=True)
    def failed_asset(self, documents: InMemoryDocumentStore, object_storage: InMemoryObjectStorage) -> None:
        documents.put(
            "videos/a1",
            {"ownerId": "u1", "status": "failed", "rawPath": RAW_PATH, "rawBucket": BUCKET},
        )
        object_storage.put(BUCKET, RAW_PATH)

    def test_owner_retry_succeeds(self, client: TestClient) -> None:
        response = client.post("/v1/videos/a1/retry", headers={**API_KEY, "X-User-Id": "u1"})

        assert response.status_code == 200
        assert response.json() == {"asset_id": "a1", "status": "ready", "attempts": 1}

    def test_admin_key_may_retry_any_asset(self, client: TestClient) -> None:
        response = client.post("/v1/videos/a1/retry", headers={**ADMIN_KEY, "X-User-Id": "moderator"})

        assert response.status_code == 200

    def test_other_user_gets_403(self, client: TestClient) -> None:
        response = client.post("/v1/videos/a1/retry", headers={**API_KEY, "X-User-Id": "u2"})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "retry_not_allowed"

    def test_missing_raw_returns_409(self, client: TestClient, object_storage: InMemoryObjectStorage) -> None:
        object_storage._objects.clear()

        response = client.post("/v1/videos/a1/retry", headers={**API_KEY, "X-User-Id": "u1"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "raw_file_deleted"

    def test_processing_failure_returns_502(self, client: TestClient, transcoder: AsyncMock) -> None:
        transcoder.transcode.side_effect = TranscodingProviderError(
            code="cloudinary_http_error",
            message="Cloudinary upload failed: File size too large",
            http_code=400,
            provider="cloudinary",
        )

        response = client.post("/v1/videos/a1/retry", headers={**API_KEY, "X-User-Id": "u1"})

        assert response.status_code == 502
        assert response.json()["error"]["details"]["code"] == "FILE_TOO_LARGE"
