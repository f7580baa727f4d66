"""Firestore implementation of the document store collaborator."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Sequence

from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore

from quotaflow.adapters.documents.base import (
    AbstractDocumentStore,
    CounterRef,
    Document,
    SagaState,
)

logger = logging.getLogger(__name__)


class FirestoreDocumentStore(AbstractDocumentStore):
    """Document store over a Firestore ``AsyncClient``."""

    def __init__(
        self,
        client: firestore.AsyncClient,
        *,
        videos_collection: str = "videos",
        alerts_collection: str = "admin_alerts",
        users_collection: str = "users",
        sagas_collection: str = "rate_limit_sagas",
        saga_ttl_days: int = 7,
    ) -> None:
        self._client = client
        self._videos = videos_collection
        self._alerts = alerts_collection
        self._users = users_collection
        self._sagas = sagas_collection
        self._saga_ttl = timedelta(days=saga_ttl_days)

    async def get_document(self, path: str) -> Document | None:
        snapshot = await self._client.document(path).get()
        return snapshot.to_dict() if snapshot.exists else None

    async def get_video(self, asset_id: str) -> Document | None:
        return await self.get_document(f"{self._videos}/{asset_id}")

    async def update_video(self, asset_id: str, fields: Document) -> None:
        ref = self._client.collection(self._videos).document(asset_id)
        await ref.set({**fields, "updatedAt": firestore.SERVER_TIMESTAMP}, merge=True)

    async def append_alert(self, alert: Document) -> str:
        _, ref = await self._client.collection(self._alerts).add(alert)
        return ref.id

    async def add_notification(self, user_id: str, notification: Document) -> str:
        collection = self._client.collection(self._users, user_id, "notifications")
        _, ref = await collection.add(notification)
        return ref.id

    async def compensate_artifact(
        self,
        artifact_paths: Sequence[str],
        counters: Sequence[CounterRef],
    ) -> bool:
        if not artifact_paths:
            raise ValueError("artifact_paths must not be empty")

        artifact_refs = [self._client.document(path) for path in artifact_paths]
        counter_refs = [(self._client.document(c.path), c.field) for c in counters]

        @firestore.async_transactional
        async def _body(tx: firestore.AsyncTransaction) -> bool:
            # Firestore requires every read before the first write.
            primary = await artifact_refs[0].get(transaction=tx)
            if not primary.exists:
                return False
            parents = [await ref.get(transaction=tx) for ref, _ in counter_refs]

            for ref in artifact_refs:
                tx.delete(ref)
            for (ref, field), parent in zip(counter_refs, parents):
                if not parent.exists:
                    logger.warning(
                        "compensation.counter_parent_missing",
                        extra={"path": ref.path, "field": field},
                    )
                    continue
                tx.update(
                    ref,
                    {
                        field: firestore.Increment(-1),
                        "updatedAt": firestore.SERVER_TIMESTAMP,
                    },
                )
            return True

        return await _body(self._client.transaction())

    async def begin_saga(self, key: str, fields: Document) -> SagaState | None:
        ref = self._client.collection(self._sagas).document(key)
        try:
            await ref.create(
                {
                    **fields,
                    "state": "validating",
                    "createdAt": firestore.SERVER_TIMESTAMP,
                    "ttl": datetime.now(timezone.utc) + self._saga_ttl,
                }
            )
            return None
        except AlreadyExists:
            snapshot = await ref.get()
            data = snapshot.to_dict() or {}
            return data.get("state", "validating")

    async def settle_saga(self, key: str, state: SagaState, fields: Document | None = None) -> None:
        ref = self._client.collection(self._sagas).document(key)
        await ref.set(
            {**(fields or {}), "state": state, "settledAt": firestore.SERVER_TIMESTAMP},
            merge=True,
        )
