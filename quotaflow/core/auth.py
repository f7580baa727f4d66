"""API Key authentication and caller identity.

Two kinds of clients call the service:
- The event push subscriptions, authenticated with an API key only.
- The authenticating gateway in front of the user callables. It forwards the
  signed-in user's id in ``X-User-Id``; a key listed in
  ``APP_ADMIN_API_KEYS`` marks that caller as an admin.

Keys are validated against comma-separated lists from environment variables.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Annotated

from fastapi import Header, HTTPException, status

from quotaflow.core.config import settings
from quotaflow.core.errors import AuthenticationAppError
from quotaflow.schemas.video import Caller

logger = logging.getLogger(__name__)


def _hash_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Args:
        keys_string: Comma-separated string of API keys, or None.

    Returns:
        Set of trimmed, non-empty API keys.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 , key3 "))
        ['key1', 'key2', 'key3']
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def is_admin_key(provided_key: str | None) -> bool:
    """True if ``provided_key`` is one of the configured admin keys."""
    if not provided_key:
        return False
    return provided_key in parse_api_keys(settings.app.admin_api_keys)


def validate_api_key(provided_key: str) -> None:
    """Validate that provided API key matches configured keys.

    Admin keys are valid API keys as well.

    Args:
        provided_key: API key to validate.

    Raises:
        AuthenticationAppError: If key is invalid or authentication is required but no keys configured.
    """
    if not settings.app.api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.api_keys) | parse_api_keys(settings.app.admin_api_keys)

    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={
                "reason": "api_keys_not_configured",
                "auth_required": settings.app.api_key_required,
            },
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "api_key_validation_failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": _hash_key(provided_key),
                "auth_required": settings.app.api_key_required,
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency for API key authentication.

    Validates the X-API-Key header against configured API keys.
    Can be disabled by setting APP_API_KEY_REQUIRED=false.

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.api_key_required:
        logger.debug(
            "auth.skipped",
            extra={"reason": "auth_required_false"},
        )
        return

    if not x_api_key:
        logger.warning(
            "auth.missing_key",
            extra={
                "auth_required": True,
                "api_key_present": False,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.debug(
        "auth.success",
        extra={"api_key_hash": _hash_key(x_api_key)},
    )


async def get_caller(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> Caller:
    """FastAPI dependency resolving the signed-in caller of a callable.

    Raises:
        HTTPException: 401 Unauthorized when no user id is forwarded.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        logger.warning("auth.missing_user", extra={"api_key_present": bool(x_api_key)})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sign-in required. Provide X-User-Id header.",
        )
    return Caller(user_id=user_id, is_admin=is_admin_key(x_api_key))
