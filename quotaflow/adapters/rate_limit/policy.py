"""Static rate limit policy table and UTC window arithmetic."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal

RateLimitAction = Literal["upload", "comment", "like", "follow", "share", "flag"]
RateLimitWindow = Literal["hourly", "daily"]


@dataclass(frozen=True)
class RateLimitPolicy:
    limit: int
    window: RateLimitWindow


RATE_LIMIT_POLICIES: dict[str, RateLimitPolicy] = {
    "upload": RateLimitPolicy(limit=5, window="hourly"),
    "comment": RateLimitPolicy(limit=20, window="hourly"),
    "like": RateLimitPolicy(limit=100, window="hourly"),
    "follow": RateLimitPolicy(limit=30, window="hourly"),
    "share": RateLimitPolicy(limit=50, window="hourly"),
    "flag": RateLimitPolicy(limit=10, window="daily"),
}


def bucket_key(window: RateLimitWindow, now: datetime) -> str:
    """Deterministic key of the window containing ``now``.

    Examples:
        >>> bucket_key("hourly", datetime(2024, 3, 9, 7, 59, tzinfo=timezone.utc))
        '2024-03-09-07'
        >>> bucket_key("daily", datetime(2024, 3, 9, 7, 59, tzinfo=timezone.utc))
        '2024-03-09'
    """
    now = now.astimezone(timezone.utc)
    if window == "hourly":
        return now.strftime("%Y-%m-%d-%H")
    return now.strftime("%Y-%m-%d")


def window_end(window: RateLimitWindow, now: datetime) -> datetime:
    """Start of the next UTC hour (hourly) or the next UTC midnight (daily)."""
    now = now.astimezone(timezone.utc)
    if window == "hourly":
        return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)


def next_reset_ms(window: RateLimitWindow, now: datetime) -> int:
    """Epoch milliseconds of ``window_end``."""
    return int(window_end(window, now).timestamp() * 1000)
