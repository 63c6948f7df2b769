"""API key authentication and caller identity resolution.

Keys are configured as a comma-separated list in ``APP_API_KEYS``. Each entry
is either ``key`` or ``key:identity``. A bare key gets a derived identity
(``api_key:<fingerprint>``) so the raw key is never stored next to the user's
submissions.

Two FastAPI dependencies are exposed:
- ``get_optional_identity``: returns the identity or None. Used by the
  optimize route, whose request handler turns None into an AUTH_ERROR
  rejection as part of its own state machine.
- ``require_identity``: raises ``AuthenticationAppError`` (403) instead.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Header, Request

from app.core.config import settings
from app.core.errors import AuthenticationAppError
from app.core.logging import hash_for_logs

logger = logging.getLogger(__name__)


def _derived_identity(key: str) -> str:
    return f"api_key:{hash_for_logs(key)}"


def parse_api_keys(keys_string: str | None) -> dict[str, str]:
    """Parse the configured API keys into a key → identity mapping.

    Args:
        keys_string: Comma-separated ``key`` or ``key:identity`` entries, or None.

    Returns:
        Mapping of trimmed, non-empty keys to their identity.

    Examples:
        >>> parse_api_keys("k1:alice, k2")["k1"]
        'alice'
        >>> parse_api_keys(None)
        {}
    """
    if not keys_string:
        return {}

    keys: dict[str, str] = {}
    for entry in keys_string.split(","):
        key, _, identity = entry.strip().partition(":")
        key = key.strip()
        if not key:
            continue
        keys[key] = identity.strip() or _derived_identity(key)
    return keys


def resolve_identity(provided_key: str) -> str:
    """Map an API key to the caller identity.

    Pure logic without FastAPI dependencies for easy testing. Only used when
    authentication is required.

    Raises:
        AuthenticationAppError: If no keys are configured or the key is unknown.
    """
    valid_keys = parse_api_keys(settings.app.api_keys)

    if not valid_keys:
        logger.error(
            "auth.failed",
            extra={"reason": "api_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    identity = valid_keys.get(provided_key)
    if identity is None:
        logger.warning(
            "auth.failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": hash_for_logs(provided_key),
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )

    return identity


async def get_optional_identity(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> str | None:
    """FastAPI dependency resolving the caller identity, or None.

    With authentication disabled, the identity falls back to the (derived)
    key when one is sent, otherwise to the client IP.
    """
    if not settings.app.api_key_required:
        if x_api_key:
            return _derived_identity(x_api_key)
        client_host = request.client.host if request.client else "unknown"
        return f"ip:{client_host}"

    if not x_api_key:
        logger.warning("auth.missing_key", extra={"api_key_present": False})
        return None

    try:
        identity = resolve_identity(x_api_key)
    except AuthenticationAppError:
        return None

    logger.debug("auth.success", extra={"api_key_hash": hash_for_logs(x_api_key)})
    return identity


async def require_identity(
    identity: Annotated[str | None, Depends(get_optional_identity)],
) -> str:
    """FastAPI dependency that rejects unauthenticated callers with 403."""
    if identity is None:
        raise AuthenticationAppError(
            code="unauthenticated",
            message="Invalid or missing API key. Provide X-API-Key header.",
        )
    return identity
