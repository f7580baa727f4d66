"""Transcoding adapter layer - abstracts over the video processing provider."""

from quotaflow.adapters.transcoding.base import AbstractTranscoder, TranscodeResult
from quotaflow.adapters.transcoding.cloudinary_client import CloudinaryTranscoder
from quotaflow.adapters.transcoding.factory import create_transcoder

__all__ = [
    "AbstractTranscoder",
    "CloudinaryTranscoder",
    "TranscodeResult",
    "create_transcoder",
]
