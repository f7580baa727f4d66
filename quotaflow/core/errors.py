"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Quota denials are not exceptions: the limiter returns a denied
``RateLimitResult`` and each caller handles it locally. Only the flag callable
turns a denial into ``RateLimitExceededError`` for its HTTP response.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep the shape flexible while encouraging
    consistent keys across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    http_code: int
    provider: str
    retry_after_seconds: int
    reset_at: int
    limit: int
    action: str
    user_id: str
    asset_id: str
    raw_path: str
    attempts: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class NotFoundAppError(AppError):
    """Raised when a referenced document does not exist."""


class PreconditionAppError(AppError):
    """Raised when a document is not in a state that allows the operation."""


class RawAssetMissingError(PreconditionAppError):
    """Raised by the retry entry point when the raw upload is gone."""


class RateLimitExceededError(AppError):
    """Raised by callables that surface a quota denial to the client."""


class ProcessingAppError(AppError):
    """Raised when a retried ingestion still ends in a failed state."""


class QuotaInfrastructureError(AppError):
    """Raised by quota stores when a transaction cannot complete.

    The rate limiter converts this (and any other store failure) into an
    allow decision, so it never reaches an HTTP response.
    """


@dataclass
class TranscodingProviderError(AppError):
    """Raised by transcoding adapters when the provider call fails.

    Attributes:
        http_code: HTTP status returned by the provider, if any.
        provider: Provider name, used as a marker by the error classifier.
    """

    http_code: int | None = None
    provider: str | None = None
