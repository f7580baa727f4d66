"""Rate limiter backed by a transactional quota store.

The check and the increment run in one store transaction, so concurrent
callers for the same (user, action) are linearized: with limit L, at most L
of them are allowed per window. Window rotation happens inside the same
transaction as the check.

Failure policy is fail-open: if the transaction raises for any reason the
action is allowed with a full budget and the fallback is logged for audit.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from quotaflow.adapters.quota_store.base import AbstractQuotaStore, QuotaRecord
from quotaflow.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from quotaflow.adapters.rate_limit.policy import (
    RATE_LIMIT_POLICIES,
    RateLimitPolicy,
    bucket_key,
    next_reset_ms,
)
from quotaflow.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


class StoreBackedRateLimiter(AbstractRateLimiter):
    """Fixed UTC-window limiter over one quota record per user."""

    def __init__(
        self,
        store: AbstractQuotaStore,
        *,
        record_ttl_days: int = 30,
        policies: dict[str, RateLimitPolicy] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Transactional quota record store.
            record_ttl_days: Retention written to the record's ttl field.
            policies: Policy table override (defaults to RATE_LIMIT_POLICIES).
            clock: Time source returning UNIX time in seconds.
        """
        self._store = store
        self._record_ttl = timedelta(days=record_ttl_days)
        self._policies = policies if policies is not None else RATE_LIMIT_POLICIES
        self._clock = clock

    def policy_for(self, action: str) -> RateLimitPolicy:
        """Return the policy for ``action``.

        Raises:
            ValidationAppError: If the action has no policy.
        """
        policy = self._policies.get(action)
        if policy is None:
            raise ValidationAppError(
                code="unknown_rate_limit_action",
                message=f"No rate limit policy for action '{action}'",
                details={"action": action},
            )
        return policy

    async def check_and_consume(self, user_id: str, action: str) -> RateLimitResult:
        """Check the user's budget for ``action`` and consume one unit.

        Args:
            user_id: Actor whose budget is consumed.
            action: Action name from the policy table.

        Returns:
            RateLimitResult. Denials carry retry_after_seconds; store failures
            produce an allow with remaining == limit.

        Raises:
            ValidationAppError: If the action is unknown or user_id is empty.
        """
        if not user_id:
            raise ValidationAppError(
                code="missing_user_id",
                message="user_id must be a non-empty string",
            )
        policy = self.policy_for(action)

        now_s = self._clock()
        now = datetime.fromtimestamp(now_s, tz=timezone.utc)
        now_ms = int(now_s * 1000)
        current_bucket = bucket_key(policy.window, now)
        reset_at = next_reset_ms(policy.window, now)

        def _apply(record: QuotaRecord | None) -> tuple[RateLimitResult, QuotaRecord | None]:
            stored: dict[str, Any] = dict((record or {}).get(action) or {})
            if stored.get("bucket") != current_bucket:
                stored = {"count": 0, "bucket": current_bucket, "resetAt": reset_at}

            count = int(stored.get("count", 0))
            if count >= policy.limit:
                retry_after = math.ceil((reset_at - now_ms) / 1000)
                denied = RateLimitResult(
                    allowed=False,
                    limit=policy.limit,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after_seconds=retry_after,
                )
                return denied, None

            stored["count"] = count + 1
            write: QuotaRecord = {
                "userId": user_id,
                action: stored,
                "lastUpdated": now,
                "ttl": now + self._record_ttl,
            }
            allowed = RateLimitResult(
                allowed=True,
                limit=policy.limit,
                remaining=policy.limit - stored["count"],
                reset_at=int(stored.get("resetAt", reset_at)),
            )
            return allowed, write

        try:
            result = await self._store.run_transaction(user_id, _apply)
        except Exception as exc:
            logger.error(
                "rate_limit.fail_open",
                extra={
                    "user_id": user_id,
                    "action": action,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return RateLimitResult(
                allowed=True,
                limit=policy.limit,
                remaining=policy.limit,
                reset_at=reset_at,
            )

        if result.allowed:
            logger.info(
                "rate_limit.allowed",
                extra={
                    "user_id": user_id,
                    "action": action,
                    "limit": result.limit,
                    "remaining": result.remaining,
                    "bucket": current_bucket,
                },
            )
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "user_id": user_id,
                    "action": action,
                    "limit": result.limit,
                    "reset_at": result.reset_at,
                    "retry_after_s": result.retry_after_seconds,
                },
            )
        return result
