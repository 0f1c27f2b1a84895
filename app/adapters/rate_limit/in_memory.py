"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, acquired with a timeout so a
  stuck holder never blocks admission indefinitely.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

from app.adapters.rate_limit.base import (
    AbstractWindowStore,
    CountResult,
    UsageSummary,
    UsageWindow,
    build_summary,
)
from app.core.errors import StoreUnavailableError


@dataclass
class _WindowState:
    count: int
    window_start: float
    last_request: float

    def snapshot(self, identifier: str) -> UsageWindow:
        return UsageWindow(
            identifier=identifier,
            count=self.count,
            window_start=self.window_start,
            last_request=self.last_request,
        )


class InMemoryWindowStore(AbstractWindowStore):
    """Window counter store backed by a dict keyed by identifier.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits. Use the Redis store to share counters.
    """

    def __init__(
        self,
        *,
        retention_seconds: int = 3600,
        lock_timeout_seconds: float = 0.5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            retention_seconds: Windows older than this (from window_start) are purged.
            lock_timeout_seconds: Max wait for the state lock before failing.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If retention_seconds or lock_timeout_seconds are invalid.
        """
        if retention_seconds < 1:
            raise ValueError("retention_seconds must be >= 1")
        if lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be > 0")

        self._retention_seconds = retention_seconds
        self._lock_timeout = lock_timeout_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}

    def now(self) -> float:
        return self._clock()

    @contextmanager
    def _locked(self, operation: str) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise StoreUnavailableError(
                code="rate_limit_store_timeout",
                message="Timed out waiting for the in-memory window store",
                details={"backend": "memory", "operation": operation},
            )
        try:
            yield
        finally:
            self._lock.release()

    def admit_and_count(self, identifier: str, *, window_ms: int, quota: int) -> CountResult:
        """Check the quota and count the request for ``identifier``.

        Raises:
            ValueError: If identifier is empty or window/quota are invalid.
            StoreUnavailableError: If the state lock cannot be acquired in time.
        """
        if not identifier:
            raise ValueError("identifier must be a non-empty string")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if quota < 1:
            raise ValueError("quota must be >= 1")

        with self._locked("admit_and_count"):
            now = self._clock()
            state = self._state_by_key.get(identifier)

            if state is None or (now - state.window_start) * 1000 >= window_ms:
                state = _WindowState(count=1, window_start=now, last_request=now)
                self._state_by_key[identifier] = state
                return CountResult(admitted=True, count=1, window_start=now, observed_at=now)

            if state.count >= quota:
                return CountResult(
                    admitted=False,
                    count=state.count,
                    window_start=state.window_start,
                    observed_at=now,
                )

            state.count += 1
            state.last_request = now
            return CountResult(
                admitted=True,
                count=state.count,
                window_start=state.window_start,
                observed_at=now,
            )

    def decrement(self, identifier: str) -> None:
        with self._locked("decrement"):
            state = self._state_by_key.get(identifier)
            if state is not None and state.count > 0:
                state.count -= 1

    def peek(self, identifier: str) -> UsageWindow | None:
        with self._locked("peek"):
            state = self._state_by_key.get(identifier)
            return state.snapshot(identifier) if state else None

    def summary(self) -> UsageSummary:
        with self._locked("summary"):
            windows = [state.snapshot(key) for key, state in self._state_by_key.items()]
        return build_summary(windows)

    def recent(self, limit: int = 10) -> list[UsageWindow]:
        if limit < 1:
            return []
        with self._locked("recent"):
            windows = [state.snapshot(key) for key, state in self._state_by_key.items()]
        windows.sort(key=lambda window: window.last_request, reverse=True)
        return windows[:limit]

    def purge_expired(self, now: float | None = None) -> int:
        with self._locked("purge_expired"):
            cutoff = (self._clock() if now is None else now) - self._retention_seconds
            expired_keys = [
                key for key, state in self._state_by_key.items() if state.window_start <= cutoff
            ]
            for key in expired_keys:
                del self._state_by_key[key]
        return len(expired_keys)

    def ping(self) -> None:
        with self._locked("ping"):
            return

    def clear(self) -> None:
        """Remove every window (used by tests and admin tooling)."""

        with self._locked("clear"):
            self._state_by_key.clear()
