"""Object storage interfaces and download URL helpers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping
from urllib.parse import quote

DOWNLOAD_TOKENS_KEY = "firebaseStorageDownloadTokens"
DOWNLOAD_HOST = "https://firebasestorage.googleapis.com"


def extract_download_token(metadata: Mapping[str, Any] | None) -> str | None:
    """Return the first non-empty download token from custom metadata.

    Examples:
        >>> extract_download_token({"firebaseStorageDownloadTokens": " ,abc,def"})
        'abc'
        >>> extract_download_token({}) is None
        True
    """
    if not metadata:
        return None
    raw = metadata.get(DOWNLOAD_TOKENS_KEY)
    if not raw:
        return None
    for token in str(raw).split(","):
        token = token.strip()
        if token:
            return token
    return None


def build_download_url(bucket: str, path: str, token: str) -> str:
    """Token-authorized download URL for an object."""
    return (
        f"{DOWNLOAD_HOST}/v0/b/{bucket}/o/{quote(path, safe='')}"
        f"?alt=media&token={quote(token, safe='')}"
    )


def is_download_url(url: str | None) -> bool:
    """True if ``url`` is a token-authorized download URL."""
    return bool(url) and "firebasestorage.googleapis.com" in url and "token=" in url


class AbstractObjectStorage(ABC):
    """Interface for the object storage collaborator."""

    @abstractmethod
    async def delete(self, bucket: str, path: str) -> None:
        """Delete an object.

        Raises:
            Exception: Backend specific, including when the object is missing.
        """
        raise NotImplementedError

    @abstractmethod
    async def exists(self, bucket: str, path: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def get_metadata(self, bucket: str, path: str) -> dict[str, str]:
        """Return the object's custom metadata (empty if it has none)."""
        raise NotImplementedError

    @abstractmethod
    async def signed_url(self, bucket: str, path: str, *, ttl_seconds: int) -> str:
        """Return a short-lived signed read URL."""
        raise NotImplementedError
