from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal

DeliveryMode = Literal["upload", "authenticated"]


@dataclass(frozen=True)
class TranscodeResult:
    """Outcome of a successful transcoding call.

    Attributes:
        playback_url: HLS playlist URL.
        thumbnail_url: Poster frame URL.
        duration_seconds: Media duration reported by the provider.
        provider_asset_id: Provider-side id of the processed asset.
        delivery_mode: Provider delivery type used for the asset.
    """

    playback_url: str | None
    thumbnail_url: str | None
    duration_seconds: float | None
    provider_asset_id: str | None
    delivery_mode: DeliveryMode = "upload"


class AbstractTranscoder(ABC):
    """Interface for providers that turn a raw upload into HLS renditions."""

    provider_name: str = "provider"

    @abstractmethod
    async def transcode(
        self,
        source_url: str,
        asset_id: str,
        *,
        privacy: str | None = None,
    ) -> TranscodeResult:
        """Pull ``source_url`` into the provider and wait for renditions.

        Args:
            source_url: URL the provider can read the raw upload from.
            asset_id: Video asset id, used as the provider public id.
            privacy: Desired privacy of the asset (public/private/followers-only).

        Returns:
            TranscodeResult with playback and thumbnail URLs.

        Raises:
            TranscodingProviderError: If the provider rejects or fails the call.
        """
        ...
