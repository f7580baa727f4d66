"""In-memory document store.

Per-process only. Documents live in a flat dict keyed by slash-separated
path; a lock serializes compensations and saga creation so they keep the
same atomicity as their Firestore counterparts.
"""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Sequence

from quotaflow.adapters.documents.base import (
    AbstractDocumentStore,
    CounterRef,
    Document,
    SagaState,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryDocumentStore(AbstractDocumentStore):
    """Document store keeping every document in a process-local dict."""

    def __init__(
        self,
        *,
        videos_collection: str = "videos",
        alerts_collection: str = "admin_alerts",
        users_collection: str = "users",
        sagas_collection: str = "rate_limit_sagas",
        saga_ttl_days: int = 7,
    ) -> None:
        self._videos = videos_collection
        self._alerts = alerts_collection
        self._users = users_collection
        self._sagas = sagas_collection
        self._saga_ttl = timedelta(days=saga_ttl_days)
        self._lock = threading.RLock()
        self._docs: dict[str, Document] = {}

    # Inspection helpers for local runs and tests

    def put(self, path: str, data: Document) -> None:
        with self._lock:
            self._docs[path] = copy.deepcopy(data)

    def get(self, path: str) -> Document | None:
        with self._lock:
            doc = self._docs.get(path)
            return copy.deepcopy(doc) if doc is not None else None

    def list_collection(self, collection_path: str) -> list[Document]:
        """Documents directly under ``collection_path`` (no sub-collections)."""
        prefix = collection_path.rstrip("/") + "/"
        with self._lock:
            return [
                copy.deepcopy(doc)
                for path, doc in self._docs.items()
                if path.startswith(prefix) and "/" not in path[len(prefix):]
            ]

    def alerts(self) -> list[Document]:
        return self.list_collection(self._alerts)

    def notifications(self, user_id: str) -> list[Document]:
        return self.list_collection(f"{self._users}/{user_id}/notifications")

    # AbstractDocumentStore

    async def get_document(self, path: str) -> Document | None:
        return self.get(path)

    async def get_video(self, asset_id: str) -> Document | None:
        return self.get(f"{self._videos}/{asset_id}")

    async def update_video(self, asset_id: str, fields: Document) -> None:
        path = f"{self._videos}/{asset_id}"
        with self._lock:
            doc = self._docs.setdefault(path, {})
            doc.update(copy.deepcopy(fields))
            doc["updatedAt"] = _now()

    async def append_alert(self, alert: Document) -> str:
        return self._add(self._alerts, alert)

    async def add_notification(self, user_id: str, notification: Document) -> str:
        return self._add(f"{self._users}/{user_id}/notifications", notification)

    def _add(self, collection_path: str, data: Document) -> str:
        doc_id = uuid.uuid4().hex
        self.put(f"{collection_path}/{doc_id}", data)
        return doc_id

    async def compensate_artifact(
        self,
        artifact_paths: Sequence[str],
        counters: Sequence[CounterRef],
    ) -> bool:
        if not artifact_paths:
            raise ValueError("artifact_paths must not be empty")

        with self._lock:
            if artifact_paths[0] not in self._docs:
                return False
            for path in artifact_paths:
                self._docs.pop(path, None)
            for counter in counters:
                parent = self._docs.get(counter.path)
                if parent is None:
                    continue
                parent[counter.field] = int(parent.get(counter.field, 0)) - 1
                parent["updatedAt"] = _now()
            return True

    async def begin_saga(self, key: str, fields: Document) -> SagaState | None:
        path = f"{self._sagas}/{key}"
        with self._lock:
            existing = self._docs.get(path)
            if existing is not None:
                return existing.get("state", "validating")
            now = _now()
            self._docs[path] = {
                **copy.deepcopy(fields),
                "state": "validating",
                "createdAt": now,
                "ttl": now + self._saga_ttl,
            }
            return None

    async def settle_saga(self, key: str, state: SagaState, fields: Document | None = None) -> None:
        path = f"{self._sagas}/{key}"
        with self._lock:
            doc = self._docs.setdefault(path, {})
            doc.update(copy.deepcopy(fields or {}))
            doc["state"] = state
            doc["settledAt"] = _now()
