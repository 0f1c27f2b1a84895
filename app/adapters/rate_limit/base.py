"""Window counter store interfaces.

The admission engine and the introspection service depend on this
abstraction (not the concrete implementation) so the storage backend can be
swapped (in-process dict, Redis) without touching the API layer.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class UsageWindow:
    """Current usage window for one identifier.

    Attributes:
        identifier: Key the requests are billed against.
        count: Requests counted in the current window.
        window_start: UNIX epoch seconds when the current window began.
        last_request: UNIX epoch seconds of the most recently counted request.
    """

    identifier: str
    count: int
    window_start: float
    last_request: float

    def is_expired(self, window_ms: int, now: float) -> bool:
        return (now - self.window_start) * 1000 >= window_ms


@dataclass(frozen=True)
class CountResult:
    """Outcome of an atomic check-and-increment.

    Attributes:
        admitted: Whether the request was counted (False when the quota was
            already exhausted in a live window).
        count: Window count after the operation.
        window_start: Start of the window the request was evaluated against.
        observed_at: Store clock reading used for the decision.
    """

    admitted: bool
    count: int
    window_start: float
    observed_at: float


@dataclass(frozen=True)
class UsageSummary:
    """Aggregate usage across all tracked identifiers."""

    total_identifiers: int
    total_requests: int
    average_requests_per_identifier: float


def build_summary(windows: list[UsageWindow]) -> UsageSummary:
    total = sum(window.count for window in windows)
    average = total / len(windows) if windows else 0.0
    return UsageSummary(
        total_identifiers=len(windows),
        total_requests=total,
        average_requests_per_identifier=average,
    )


class AbstractWindowStore(ABC):
    """Interface for window counter stores.

    Every implementation must make ``admit_and_count`` a single atomic
    operation per identifier. Failures surface as StoreUnavailableError.
    """

    def now(self) -> float:
        """Clock reading the store evaluates windows against (UNIX seconds)."""
        return time.time()

    @abstractmethod
    def admit_and_count(self, identifier: str, *, window_ms: int, quota: int) -> CountResult:
        """Check the quota and count the request in one atomic step.

        - No window, or the window is at least ``window_ms`` old: start a new
          window with count 1 and admit.
        - Live window with ``count >= quota``: reject without counting.
        - Otherwise: increment and admit.

        Args:
            identifier: Key the request is billed against.
            window_ms: Window length of the applying policy.
            quota: Maximum admitted requests per window.

        Returns:
            CountResult describing the decision and the resulting window.
        """
        raise NotImplementedError

    @abstractmethod
    def decrement(self, identifier: str) -> None:
        """Give one slot back (best effort, never below zero)."""
        raise NotImplementedError

    @abstractmethod
    def peek(self, identifier: str) -> UsageWindow | None:
        """Read the window for an identifier without mutating it."""
        raise NotImplementedError

    @abstractmethod
    def summary(self) -> UsageSummary:
        """Aggregate usage across every tracked identifier."""
        raise NotImplementedError

    @abstractmethod
    def recent(self, limit: int = 10) -> list[UsageWindow]:
        """Most recently active windows, ordered by last_request descending."""
        raise NotImplementedError

    @abstractmethod
    def purge_expired(self, now: float | None = None) -> int:
        """Delete windows older than the retention horizon.

        Returns:
            Number of windows removed.
        """
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> None:
        """Raise StoreUnavailableError if the store cannot serve requests."""
        raise NotImplementedError
