"""Rate limiter wiring for the HTTP layer.

Builds the process-wide quota store and limiter from settings and renders
limiter results as response headers.

Design goals:
- Minimal coupling: routes and services depend on the abstract limiter only.
- Swap-friendly: the quota store backend (memory, Firestore) is chosen by
  ``STORAGE_BACKEND`` without touching consumers.
"""

from __future__ import annotations

import logging

from quotaflow.adapters.quota_store.base import AbstractQuotaStore
from quotaflow.adapters.quota_store.in_memory import InMemoryQuotaStore
from quotaflow.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from quotaflow.adapters.rate_limit.store_backed import StoreBackedRateLimiter
from quotaflow.core.config import settings

logger = logging.getLogger(__name__)


_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[str, str, int, int] | None = None


def build_quota_store() -> AbstractQuotaStore:
    """Create the quota store for the configured backend."""

    if settings.storage.backend == "gcp":
        from quotaflow.adapters.quota_store.firestore import FirestoreQuotaStore
        from quotaflow.api.deps import get_firestore_client

        return FirestoreQuotaStore(
            get_firestore_client(),
            collection=settings.quota.collection,
            max_attempts=settings.quota.max_transaction_attempts,
        )
    return InMemoryQuotaStore()


def get_rate_limiter() -> AbstractRateLimiter:
    """Return a process-wide rate limiter instance.

    The instance is cached in-module so the in-memory backend keeps its
    records across requests. If configuration changes (primarily in tests),
    the limiter is rebuilt.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    global _limiter, _limiter_config

    config = (
        settings.storage.backend,
        settings.quota.collection,
        settings.quota.record_ttl_days,
        settings.quota.max_transaction_attempts,
    )

    if _limiter is None or _limiter_config != config:
        _limiter = StoreBackedRateLimiter(
            build_quota_store(),
            record_ttl_days=settings.quota.record_ttl_days,
        )
        _limiter_config = config
        logger.info("rate_limit.limiter_built", extra={"backend": settings.storage.backend})

    return _limiter


def reset_rate_limiter() -> None:
    """Drop the cached limiter (tests)."""

    global _limiter, _limiter_config
    _limiter = None
    _limiter_config = None


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Response headers describing the caller's budget.

    Examples:
        >>> rate_limit_headers(RateLimitResult(False, 10, 0, 1700000000000, 30))["Retry-After"]
        '30'
    """

    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at),
    }
    if result.retry_after_seconds is not None:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers
