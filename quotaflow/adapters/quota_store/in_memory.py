"""In-memory quota store.

Notes:
- Per-process only: suitable for local runs and tests.
- Transactions for the same user run one at a time under a per-user
  ``asyncio.Lock``; read, apply and commit never interleave with another
  caller's, so any number of concurrent callers is linearized without a
  retry budget. Different users do not block each other.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import threading

from quotaflow.adapters.quota_store.base import (
    AbstractQuotaStore,
    QuotaRecord,
    QuotaTransaction,
    T,
)

logger = logging.getLogger(__name__)


class InMemoryQuotaStore(AbstractQuotaStore):
    """Quota store keeping records in a process-local dict."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, QuotaRecord] = {}
        self._user_locks: dict[str, asyncio.Lock] = {}

    def snapshot(self, user_id: str) -> QuotaRecord | None:
        """Return a deep copy of the stored record (None if absent)."""
        with self._lock:
            record = self._records.get(user_id)
            return copy.deepcopy(record) if record is not None else None

    def _user_lock(self, user_id: str) -> asyncio.Lock:
        with self._lock:
            return self._user_locks.setdefault(user_id, asyncio.Lock())

    def _commit(self, user_id: str, write: QuotaRecord) -> None:
        """Merge ``write`` into the user's record, creating it if needed."""
        with self._lock:
            self._records.setdefault(user_id, {}).update(copy.deepcopy(write))

    async def run_transaction(self, user_id: str, apply: QuotaTransaction[T]) -> T:
        async with self._user_lock(user_id):
            current = self.snapshot(user_id)
            result, write = apply(current)
            # Other callers get the loop here but queue on the user lock.
            await asyncio.sleep(0)
            if write is not None:
                self._commit(user_id, write)
            logger.debug("quota_store.committed", extra={"user_id": user_id, "written": write is not None})
            return result
