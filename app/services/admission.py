"""Admission decision engine.

Turns a resolved identity and a policy into an Admit or Reject decision by
running the store's atomic check-and-increment. Store failures fail open:
the request is admitted and the condition is logged.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone

from app.adapters.rate_limit.base import AbstractWindowStore
from app.core.errors import StoreUnavailableError
from app.core.logging import hash_for_log
from app.core.policies import Policy
from app.services.identity import IdentityKind, ResolvedIdentity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admit:
    """Request may proceed.

    ``limit``/``remaining``/``reset_at`` are None when limiting did not apply
    (no identity, or the store was unavailable); no headers are set then.
    """

    limit: int | None = None
    remaining: int | None = None
    reset_at: float | None = None
    strategy_used: IdentityKind | None = None

    @classmethod
    def skipped(cls) -> "Admit":
        return cls()

    @property
    def counted(self) -> bool:
        return self.limit is not None

    @property
    def reset_at_datetime(self) -> datetime | None:
        if self.reset_at is None:
            return None
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc)


@dataclass(frozen=True)
class Reject:
    """Quota exhausted for the current window."""

    limit: int
    reset_at: float
    retry_after_seconds: int
    strategy_used: IdentityKind
    message: str
    remaining: int = 0

    @property
    def reset_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc)


Decision = Admit | Reject


class AdmissionEngine:
    """Decide whether a request is admitted under a policy."""

    def __init__(self, store: AbstractWindowStore) -> None:
        self._store = store

    @property
    def store(self) -> AbstractWindowStore:
        return self._store

    def decide(self, identity: ResolvedIdentity | None, policy: Policy) -> Decision:
        """Count the request against ``policy`` or reject it.

        Args:
            identity: Resolved identifier, or None when none could be derived.
            policy: Policy applying to the route.

        Returns:
            Admit (with header data when counted) or Reject.
        """
        if identity is None:
            return Admit.skipped()

        key_hash = hash_for_log(identity.identifier)
        try:
            result = self._store.admit_and_count(
                identity.identifier,
                window_ms=policy.window_ms,
                quota=policy.quota,
            )
        except StoreUnavailableError as exc:
            logger.warning(
                "rate_limit.store_unavailable",
                extra={
                    "policy": policy.name,
                    "key_hash": key_hash,
                    "error_code": exc.code,
                    "error_message": exc.message,
                },
            )
            return Admit.skipped()

        reset_at = result.window_start + policy.window_seconds

        if result.admitted:
            remaining = max(0, policy.quota - result.count)
            logger.info(
                "rate_limit.admitted",
                extra={
                    "policy": policy.name,
                    "key_type": identity.kind,
                    "key_hash": key_hash,
                    "limit": policy.quota,
                    "remaining": remaining,
                    "window_ms": policy.window_ms,
                },
            )
            return Admit(
                limit=policy.quota,
                remaining=remaining,
                reset_at=reset_at,
                strategy_used=identity.kind,
            )

        retry_after = max(0, math.ceil(reset_at - result.observed_at))
        logger.warning(
            "rate_limit.rejected",
            extra={
                "policy": policy.name,
                "key_type": identity.kind,
                "key_hash": key_hash,
                "limit": policy.quota,
                "count": result.count,
                "window_ms": policy.window_ms,
                "retry_after_s": retry_after,
            },
        )
        return Reject(
            limit=policy.quota,
            reset_at=reset_at,
            retry_after_seconds=retry_after,
            strategy_used=identity.kind,
            message=policy.message,
        )

    def compensate(self, identity: ResolvedIdentity, policy: Policy, status_code: int) -> bool:
        """Give the slot back when the policy does not count this outcome.

        Best effort: concurrent increments may interleave, and store errors
        are logged rather than raised.

        Returns:
            True if a decrement was issued.
        """
        succeeded = status_code < 400
        if not (
            (succeeded and policy.skip_successful_requests)
            or (not succeeded and policy.skip_failed_requests)
        ):
            return False

        try:
            self._store.decrement(identity.identifier)
        except StoreUnavailableError as exc:
            logger.warning(
                "rate_limit.compensation_failed",
                extra={
                    "policy": policy.name,
                    "key_hash": hash_for_log(identity.identifier),
                    "error_code": exc.code,
                },
            )
            return False

        logger.debug(
            "rate_limit.compensated",
            extra={
                "policy": policy.name,
                "key_hash": hash_for_log(identity.identifier),
                "status_code": status_code,
            },
        )
        return True
