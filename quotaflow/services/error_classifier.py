"""Classification of transcoding provider errors.

Maps a provider error to a user-facing message, a stable error code and a
retryable flag. Rules are evaluated in priority order; the first match wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ProviderErrorInfo:
    """Classified provider failure.

    Attributes:
        user_message: Message stored on the video asset.
        error_code: Stable code for client branching.
        retryable: Whether another attempt may succeed.
    """

    user_message: str
    error_code: str
    retryable: bool


def _http_code(error: Any) -> int | None:
    for attr in ("http_code", "status_code", "http_status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def _message(error: Any) -> str:
    if error is None:
        return ""
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error)


def _contains(text: str, *needles: str) -> bool:
    return any(needle in text for needle in needles)


def _has_provider_marker(error: Any, http_code: int | None, text: str, provider: str) -> bool:
    """Whether ``error`` came from the provider rather than our own infrastructure."""
    if http_code is not None or getattr(error, "provider", None):
        return True
    name = provider.lower()
    return name in text or name in type(error).__name__.lower()


def classify_provider_error(error: Any, provider: str = "cloudinary") -> ProviderErrorInfo | None:
    """Classify ``error`` raised by a transcoding provider.

    Args:
        error: Exception (or any object) raised by the provider call.
        provider: Provider name used for the generic error code.

    Returns:
        ProviderErrorInfo, or None when the error carries no provider marker:
        no HTTP code, no ``provider`` attribute, and the provider name in
        neither the message nor the exception type name.

    Examples:
        >>> classify_provider_error(None) is None
        True
        >>> classify_provider_error(Exception("Cloudinary gateway timeout")).error_code
        'TIMEOUT'
        >>> classify_provider_error(Exception("GCS error: invalid signature")) is None
        True
    """
    if error is None:
        return None

    http_code = _http_code(error)
    raw_message = _message(error)
    text = raw_message.lower()

    if not _has_provider_marker(error, http_code, text, provider):
        return None

    if http_code == 429 or _contains(text, "rate limit", "too many requests"):
        return ProviderErrorInfo(
            user_message="The video service is busy right now. We will retry shortly.",
            error_code="RATE_LIMIT",
            retryable=True,
        )

    if http_code == 400 and _contains(text, "too large", "file size"):
        return ProviderErrorInfo(
            user_message="This video file is too large to process.",
            error_code="FILE_TOO_LARGE",
            retryable=False,
        )

    if http_code == 400 and _contains(text, "unsupported", "invalid video", "format not supported"):
        return ProviderErrorInfo(
            user_message="This video format is not supported. Please upload an MP4 or MOV file.",
            error_code="UNSUPPORTED_FORMAT",
            retryable=False,
        )

    if http_code in (401, 403) or _contains(text, "invalid credential", "invalid signature"):
        return ProviderErrorInfo(
            user_message="Video processing is misconfigured. Our team has been notified.",
            error_code="AUTH_FAILURE",
            retryable=False,
        )

    if http_code is not None and http_code >= 500:
        return ProviderErrorInfo(
            user_message="The video service is temporarily unavailable. We will retry shortly.",
            error_code="UNAVAILABLE",
            retryable=True,
        )

    if "timeout" in text:
        return ProviderErrorInfo(
            user_message="Video processing timed out. We will retry shortly.",
            error_code="TIMEOUT",
            retryable=True,
        )

    return ProviderErrorInfo(
        user_message=raw_message or "Video processing failed.",
        error_code=f"{provider.upper()}_ERROR",
        retryable=True,
    )


def describe_failure(error: Any, provider: str = "cloudinary") -> ProviderErrorInfo:
    """Classify ``error`` and fall back to an unknown retryable failure.

    Unclassified errors keep their raw message and use their ``code``
    attribute (if a string) or ``UNKNOWN`` as error code.
    """
    info = classify_provider_error(error, provider)
    if info is not None:
        return info

    code = getattr(error, "code", None)
    return ProviderErrorInfo(
        user_message=_message(error) or "Video processing failed.",
        error_code=code if isinstance(code, str) and code else "UNKNOWN",
        retryable=True,
    )
