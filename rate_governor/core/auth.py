"""API key authentication.

Resolves the authenticated user identity consumed by rate limiting. Keys are
configured as comma-separated ``user_id:api_key`` pairs in APP_API_KEYS.

Behavior:
- Valid X-API-Key → request.state.user_id is set (rate limited as ``user:``)
- Invalid X-API-Key → 403
- Missing X-API-Key → anonymous unless APP_API_KEY_REQUIRED=true (then 403)
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from rate_governor.core.config import settings
from rate_governor.core.errors import AuthenticationAppError
from rate_governor.core.logging import hash_for_log

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> dict[str, str]:
    """Parse comma-separated ``user_id:api_key`` pairs into a key → user map.

    Args:
        keys_string: Comma-separated pairs, or None.

    Returns:
        Mapping of API key to user id. Malformed entries are skipped.

    Examples:
        >>> parse_api_keys("alice:key1, bob:key2")
        {'key1': 'alice', 'key2': 'bob'}
        >>> parse_api_keys(None)
        {}
    """
    if not keys_string:
        return {}

    keys: dict[str, str] = {}
    for entry in keys_string.split(","):
        user_id, sep, api_key = entry.strip().partition(":")
        if not sep or not user_id.strip() or not api_key.strip():
            continue
        keys[api_key.strip()] = user_id.strip()
    return keys


def resolve_user_id(provided_key: str) -> str:
    """Return the user id that owns ``provided_key``.

    Pure validation logic without FastAPI dependencies for easy testing.

    Raises:
        AuthenticationAppError: If no keys are configured or the key is unknown.
    """
    valid_keys = parse_api_keys(settings.app.api_keys)

    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={"reason": "api_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS to comma-separated user_id:api_key pairs"},
        )

    user_id = valid_keys.get(provided_key)
    if user_id is None:
        logger.warning(
            "api_key_validation_failed",
            extra={"reason": "invalid_api_key", "api_key_hash": hash_for_log(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )
    return user_id


async def authenticate_request(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency attaching the authenticated user to the request.

    Must run before any rate limit dependency so the limiter can key the
    request by user.

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not x_api_key:
        if settings.app.api_key_required:
            logger.warning("auth.missing_key", extra={"auth_required": True})
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Missing API key. Provide X-API-Key header.",
            )
        logger.debug("auth.anonymous", extra={"auth_required": False})
        return

    try:
        user_id = resolve_user_id(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    request.state.user_id = user_id
    logger.info(
        "auth.success",
        extra={"api_key_hash": hash_for_log(x_api_key)},
    )
