"""API Key authentication logic.

This module provides simple API key authentication. Keys are configured as a
comma-separated list of ``key:user_id[:role]`` entries and resolve to an
``AuthenticatedUser`` attached to ``request.state.user``, which is what the
admission-control layer reads to bill requests per user instead of per IP.

Design principles:
- Single Responsibility: Only handles API key validation and identity lookup
- Dependency Injection: Used via FastAPI Depends() for loose coupling
- Configuration-driven: Keys managed via env vars, not hardcoded
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from app.core.config import settings
from app.core.errors import AuthenticationAppError
from app.core.logging import hash_for_log

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity context produced by authentication."""

    id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def parse_api_keys(keys_string: str | None) -> dict[str, AuthenticatedUser]:
    """Parse comma-separated API key entries into a lookup table.

    Args:
        keys_string: Comma-separated ``key:user_id[:role]`` entries, or None.

    Returns:
        Mapping of API key to the user it authenticates.

    Examples:
        >>> parse_api_keys("k1:alice:admin, k2:bob")["k2"]
        AuthenticatedUser(id='bob', role='user')
        >>> parse_api_keys("bare-key")["bare-key"].id
        'bare-key'
        >>> parse_api_keys(None)
        {}
    """
    if not keys_string:
        return {}

    users: dict[str, AuthenticatedUser] = {}
    for entry in keys_string.split(","):
        parts = [part.strip() for part in entry.split(":")]
        key = parts[0]
        if not key:
            continue
        user_id = parts[1] if len(parts) > 1 and parts[1] else key
        role = parts[2] if len(parts) > 2 and parts[2] else "user"
        users[key] = AuthenticatedUser(id=user_id, role=role)
    return users


def validate_api_key(provided_key: str) -> AuthenticatedUser:
    """Validate that provided API key matches configured keys.

    Pure validation logic without FastAPI dependencies for easy testing.

    Args:
        provided_key: API key to validate.

    Returns:
        The user the key belongs to.

    Raises:
        AuthenticationAppError: If key is invalid or no keys are configured.
    """
    users = parse_api_keys(settings.app.api_keys)

    if not users:
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

    user = users.get(provided_key)
    if user is None:
        logger.warning(
            "api_key_validation_failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": hash_for_log(provided_key),
                "auth_required": settings.app.api_key_required,
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )
    return user


async def authenticate(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> AuthenticatedUser | None:
    """FastAPI dependency that attaches the caller identity to the request.

    Must run before ``rate_limit(...)`` on routes limited per user.

    Usage:
        @router.get("/me", dependencies=[Depends(authenticate), Depends(rate_limit("general"))])

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.api_key_required:
        logger.debug(
            "auth.skipped",
            extra={"reason": "auth_required_false"},
        )
        request.state.user = None
        return None

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
        user = validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.info(
        "auth.success",
        extra={
            "api_key_hash": hash_for_log(x_api_key),
            "user_hash": hash_for_log(user.id),
        },
    )
    request.state.user = user
    return user


def get_current_user(request: Request) -> AuthenticatedUser | None:
    """Return the identity attached by ``authenticate`` (None when anonymous)."""

    return getattr(request.state, "user", None)


async def require_user(request: Request) -> AuthenticatedUser:
    """Dependency for routes that need an authenticated caller."""

    user = get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


async def require_admin(request: Request) -> AuthenticatedUser:
    """Dependency for routes restricted to admins."""

    user = await require_user(request)
    if not user.is_admin:
        logger.warning("auth.forbidden", extra={"user_hash": hash_for_log(user.id), "required_role": ADMIN_ROLE})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return user
