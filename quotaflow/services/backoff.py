"""Bounded exponential backoff used by the ingestion retry loop.

The retry loop itself is tenacity's; the policy holds the attempt budget and
the delay curve and hands out a configured ``AsyncRetrying``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential


@dataclass(frozen=True)
class BackoffPolicy:
    """Attempt budget and delays between attempts.

    Attributes:
        max_attempts: Total attempts, including the first one.
        base_delay_seconds: Delay after the first failed attempt.
        multiplier: Growth factor applied per further attempt.
        sleep: Awaitable sleep, replaced in tests.

    Examples:
        >>> policy = BackoffPolicy()
        >>> [policy.delay_for(n) for n in (1, 2)]
        [1.5, 3.0]
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.5
    multiplier: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0 or self.multiplier < 1:
            raise ValueError("delays must be non-negative and non-decreasing")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt is 1-based")
        return self.base_delay_seconds * self.multiplier ** (attempt - 1)

    def has_attempts_left(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def retrying(
        self,
        *,
        attempts_used: int = 0,
        retry_if: Callable[[BaseException], bool] = lambda exc: True,
    ) -> AsyncRetrying:
        """Retry controller for the attempts left after ``attempts_used``.

        Delays continue the curve of ``delay_for`` from the overall attempt
        number, so a run resumed after two persisted attempts waits
        ``delay_for(3)`` after its first failure. The last exception is
        re-raised once the budget is spent or ``retry_if`` declines.

        Raises:
            ValueError: If no attempts are left.
        """
        remaining = self.max_attempts - attempts_used
        if attempts_used < 0 or remaining < 1:
            raise ValueError("no attempts left in the budget")

        return AsyncRetrying(
            stop=stop_after_attempt(remaining),
            wait=wait_exponential(multiplier=self.delay_for(attempts_used + 1), exp_base=self.multiplier),
            retry=retry_if_exception(lambda exc: isinstance(exc, Exception) and retry_if(exc)),
            sleep=self.sleep,
            reraise=True,
        )
