"""Rate limiter interfaces.

Consumers (rollback triggers, the ingestion pipeline, the flag callable)
depend on this abstraction, not on the store-backed implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a check-and-consume operation.

    Attributes:
        allowed: Whether the action may proceed.
        limit: Max actions per window for this action.
        remaining: Remaining actions in the current window (0 when denied).
        reset_at: Epoch milliseconds when the current window ends.
        retry_after_seconds: Wait time in seconds when denied.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None


class AbstractRateLimiter(ABC):
    """Interface for per-user, per-action rate limiters."""

    @abstractmethod
    async def check_and_consume(self, user_id: str, action: str) -> RateLimitResult:
        """Consume one unit of the user's budget for ``action``.

        Args:
            user_id: Actor whose budget is consumed.
            action: Action name from the policy table.

        Returns:
            RateLimitResult describing whether the action is allowed.
        """
        raise NotImplementedError
