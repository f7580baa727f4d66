"""In-memory object storage for local runs and tests."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from quotaflow.adapters.object_storage.base import AbstractObjectStorage


class ObjectNotFound(Exception):
    """Raised when an object does not exist."""


@dataclass
class StoredObject:
    content_type: str = "application/octet-stream"
    size: int = 0
    metadata: dict[str, str] = field(default_factory=dict)


class InMemoryObjectStorage(AbstractObjectStorage):
    """Keeps object descriptors (no payloads) keyed by (bucket, path)."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._objects: dict[tuple[str, str], StoredObject] = {}

    def put(
        self,
        bucket: str,
        path: str,
        *,
        content_type: str = "video/mp4",
        size: int = 0,
        metadata: dict[str, str] | None = None,
    ) -> None:
        with self._lock:
            self._objects[(bucket, path)] = StoredObject(
                content_type=content_type,
                size=size,
                metadata=dict(metadata or {}),
            )

    def contains(self, bucket: str, path: str) -> bool:
        with self._lock:
            return (bucket, path) in self._objects

    async def delete(self, bucket: str, path: str) -> None:
        with self._lock:
            if self._objects.pop((bucket, path), None) is None:
                raise ObjectNotFound(f"gs://{bucket}/{path}")

    async def exists(self, bucket: str, path: str) -> bool:
        return self.contains(bucket, path)

    async def get_metadata(self, bucket: str, path: str) -> dict[str, str]:
        with self._lock:
            obj = self._objects.get((bucket, path))
            if obj is None:
                raise ObjectNotFound(f"gs://{bucket}/{path}")
            return dict(obj.metadata)

    async def signed_url(self, bucket: str, path: str, *, ttl_seconds: int) -> str:
        expires = int(time.time()) + ttl_seconds
        return f"memory://{bucket}/{path}?expires={expires}"
