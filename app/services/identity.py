"""Resolve the identifier a request is billed against."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from app.core.auth import AuthenticatedUser
from app.core.policies import IdentifierStrategy

logger = logging.getLogger(__name__)

LOCALHOST = "localhost"

_LOOPBACK_ADDRESSES = frozenset({"::1", "127.0.0.1", "::ffff:127.0.0.1"})

IdentityKind = Literal["ip", "token"]


@dataclass(frozen=True)
class ResolvedIdentity:
    """Admission-control key plus the kind reported in X-RateLimit-Type."""

    identifier: str
    kind: IdentityKind


def normalize_address(host: str | None) -> str | None:
    """Normalize a client address; loopback variants share one bucket.

    Examples:
        >>> normalize_address("::1")
        'localhost'
        >>> normalize_address(" 10.0.0.7 ")
        '10.0.0.7'
        >>> normalize_address("unknown") is None
        True
    """
    if not host:
        return None
    host = host.strip()
    if not host or host == "unknown":
        return None
    if host in _LOOPBACK_ADDRESSES:
        return LOCALHOST
    return host


def _from_user(user: AuthenticatedUser | None) -> ResolvedIdentity | None:
    if user is None or not user.id:
        return None
    return ResolvedIdentity(identifier=str(user.id), kind="token")


def _from_address(client_host: str | None) -> ResolvedIdentity | None:
    address = normalize_address(client_host)
    if address is None:
        return None
    return ResolvedIdentity(identifier=address, kind="ip")


def resolve_identifier(
    user: AuthenticatedUser | None,
    client_host: str | None,
    strategy: IdentifierStrategy,
) -> ResolvedIdentity | None:
    """Derive the identifier for a request under ``strategy``.

    Returns None when no usable identifier exists; callers skip limiting.
    """
    if strategy is IdentifierStrategy.TOKEN:
        resolved = _from_user(user)
        if resolved is None:
            # Token policies belong on authenticated routes only.
            logger.warning(
                "rate_limit.identity_unresolved",
                extra={"strategy": strategy.value, "reason": "token_policy_without_user"},
            )
        return resolved

    if strategy is IdentifierStrategy.IP:
        resolved = _from_address(client_host)
    else:
        resolved = _from_user(user) or _from_address(client_host)

    if resolved is None:
        logger.info(
            "rate_limit.identity_unresolved",
            extra={"strategy": strategy.value, "reason": "address_unavailable"},
        )
    return resolved
