"""Quota store interfaces.

The rate limiter depends on this abstraction so the same check-then-increment
logic runs against Firestore in production and an in-memory store in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, TypeVar

T = TypeVar("T")

QuotaRecord = dict[str, Any]

# Receives the current record (None when the user has none yet) and returns
# (result, write). A write of None aborts the transaction without writing;
# otherwise the write is merged into the record.
QuotaTransaction = Callable[[QuotaRecord | None], tuple[T, QuotaRecord | None]]


class AbstractQuotaStore(ABC):
    """Interface for per-user quota record stores."""

    @abstractmethod
    async def run_transaction(self, user_id: str, apply: QuotaTransaction[T]) -> T:
        """Run ``apply`` atomically against the user's quota record.

        ``apply`` may be invoked more than once when a concurrent writer
        commits first, so it must be free of side effects.

        Args:
            user_id: Owner of the quota record.
            apply: Transaction body, see ``QuotaTransaction``.

        Returns:
            The result produced by the committed invocation of ``apply``.

        Raises:
            QuotaInfrastructureError: If the backend fails or conflicts
                persist beyond the configured attempt budget.
        """
        raise NotImplementedError
