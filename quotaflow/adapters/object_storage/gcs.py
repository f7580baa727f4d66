"""Google Cloud Storage adapter.

The storage client is synchronous; calls are moved to a worker thread so the
event loop keeps serving other invocations.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

from google.cloud import storage

from quotaflow.adapters.object_storage.base import AbstractObjectStorage


class GcsObjectStorage(AbstractObjectStorage):
    def __init__(self, client: storage.Client) -> None:
        self._client = client

    def _blob(self, bucket: str, path: str) -> storage.Blob:
        return self._client.bucket(bucket).blob(path)

    async def delete(self, bucket: str, path: str) -> None:
        await asyncio.to_thread(self._blob(bucket, path).delete)

    async def exists(self, bucket: str, path: str) -> bool:
        return await asyncio.to_thread(self._blob(bucket, path).exists)

    async def get_metadata(self, bucket: str, path: str) -> dict[str, str]:
        blob = self._blob(bucket, path)
        await asyncio.to_thread(blob.reload)
        return dict(blob.metadata or {})

    async def signed_url(self, bucket: str, path: str, *, ttl_seconds: int) -> str:
        blob = self._blob(bucket, path)
        return await asyncio.to_thread(
            blob.generate_signed_url,
            version="v4",
            expiration=timedelta(seconds=ttl_seconds),
            method="GET",
        )
