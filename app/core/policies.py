"""Named admission-control policies.

Policies are process configuration: each binds a fixed window length, a
quota, and the strategy used to derive the identifier a request is billed
against. Routes pick a policy by name via ``rate_limit("general")``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from app.core.errors import PolicyNotFoundError


class IdentifierStrategy(str, Enum):
    """How a request is mapped to the key it is billed against."""

    IP = "ip"
    TOKEN = "token"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class Policy:
    """Static rate limit policy.

    Attributes:
        name: Catalog name.
        window_ms: Fixed window length in milliseconds.
        quota: Maximum admitted requests per window.
        strategy: Identifier strategy.
        message: Message returned to throttled callers.
        skip_successful_requests: Give the slot back when the response is < 400.
        skip_failed_requests: Give the slot back when the response is >= 400.
    """

    name: str
    window_ms: int
    quota: int
    strategy: IdentifierStrategy = IdentifierStrategy.HYBRID
    message: str = "Too many requests"
    skip_successful_requests: bool = False
    skip_failed_requests: bool = False

    def __post_init__(self) -> None:
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if self.quota < 1:
            raise ValueError("quota must be >= 1")

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


AUTH_STRICT = Policy(
    name="auth-strict",
    window_ms=15 * 60 * 1000,
    quota=5,
    strategy=IdentifierStrategy.HYBRID,
    message="Too many authentication attempts. Please try again later.",
)

GENERAL = Policy(
    name="general",
    window_ms=60 * 1000,
    quota=60,
    strategy=IdentifierStrategy.HYBRID,
    message="Too many requests. Please slow down.",
)

SENSITIVE = Policy(
    name="sensitive",
    window_ms=60 * 1000,
    quota=10,
    strategy=IdentifierStrategy.HYBRID,
    message="Rate limit exceeded for sensitive operations.",
)

PUBLIC_IP = Policy(
    name="public-ip",
    window_ms=60 * 1000,
    quota=20,
    strategy=IdentifierStrategy.IP,
    message="Too many requests from this IP address.",
)

REGISTRATION = Policy(
    name="registration",
    window_ms=60 * 1000,
    quota=3,
    strategy=IdentifierStrategy.IP,
    message="Too many registration attempts. Please wait before trying again.",
)

POLICIES: Mapping[str, Policy] = MappingProxyType(
    {
        policy.name: policy
        for policy in (AUTH_STRICT, GENERAL, SENSITIVE, PUBLIC_IP, REGISTRATION)
    }
)


def get_policy(name: str) -> Policy:
    """Look up a policy by name.

    Raises:
        PolicyNotFoundError: If the name is not in the catalog.
    """
    try:
        return POLICIES[name]
    except KeyError:
        raise PolicyNotFoundError(
            code="rate_limit_policy_not_found",
            message=f"Unknown rate limit policy: {name}",
            details={"policy": name, "available": sorted(POLICIES)},
        ) from None
