"""Firestore-backed quota store.

One document per user in the configured collection. Firestore transactions
are optimistic: the client retries the body when a concurrent commit touched
the document, up to ``max_attempts`` times.
"""

from __future__ import annotations

from google.api_core.exceptions import GoogleAPICallError, RetryError
from google.cloud import firestore

from quotaflow.adapters.quota_store.base import AbstractQuotaStore, QuotaTransaction, T
from quotaflow.core.errors import QuotaInfrastructureError


class FirestoreQuotaStore(AbstractQuotaStore):
    """Quota store running each check inside a Firestore async transaction."""

    def __init__(
        self,
        client: firestore.AsyncClient,
        *,
        collection: str = "rate_limits",
        max_attempts: int = 5,
    ) -> None:
        self._client = client
        self._collection = collection
        self._max_attempts = max_attempts

    async def run_transaction(self, user_id: str, apply: QuotaTransaction[T]) -> T:
        doc_ref = self._client.collection(self._collection).document(user_id)
        transaction = self._client.transaction(max_attempts=self._max_attempts)

        @firestore.async_transactional
        async def _body(tx: firestore.AsyncTransaction) -> T:
            snapshot = await doc_ref.get(transaction=tx)
            current = snapshot.to_dict() if snapshot.exists else None
            result, write = apply(current)
            if write is not None:
                tx.set(doc_ref, write, merge=True)
            return result

        try:
            return await _body(transaction)
        except (GoogleAPICallError, RetryError, ValueError) as exc:
            # ValueError is how the client reports an exhausted retry budget.
            raise QuotaInfrastructureError(
                code="quota_store_unavailable",
                message=f"Quota transaction failed: {exc}",
                details={"user_id": user_id, "attempts": self._max_attempts},
            ) from exc
