"""Read-only usage introspection over the window counter store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from app.adapters.rate_limit.base import AbstractWindowStore, UsageSummary, UsageWindow
from app.core.policies import Policy


def _to_datetime(epoch_seconds: float) -> datetime:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)


@dataclass(frozen=True)
class UsageReport:
    """Current usage of one identifier under a policy."""

    current_usage: int
    limit: int
    remaining: int
    reset_time: datetime
    window_ms: int
    last_request: datetime | None


@dataclass(frozen=True)
class GlobalStats:
    """Aggregate usage plus the most recently active identifiers."""

    summary: UsageSummary
    recent_activity: list[UsageWindow]


class UsageService:
    """Aggregations for the introspection endpoints.

    Never mutates the store; results are eventually consistent with
    concurrent admissions.
    """

    def __init__(
        self,
        store: AbstractWindowStore,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or store.now

    @property
    def store(self) -> AbstractWindowStore:
        return self._store

    def get_usage(self, identifier: str, policy: Policy) -> UsageReport:
        """Report usage for ``identifier`` as seen by ``policy``.

        An absent or already expired window is reported as zero usage with a
        fresh window starting now.
        """
        window = self._store.peek(identifier)
        now = self._clock()

        if window is None or window.is_expired(policy.window_ms, now):
            return UsageReport(
                current_usage=0,
                limit=policy.quota,
                remaining=policy.quota,
                reset_time=_to_datetime(now + policy.window_seconds),
                window_ms=policy.window_ms,
                last_request=_to_datetime(window.last_request) if window else None,
            )

        return UsageReport(
            current_usage=window.count,
            limit=policy.quota,
            remaining=max(0, policy.quota - window.count),
            reset_time=_to_datetime(window.window_start + policy.window_seconds),
            window_ms=policy.window_ms,
            last_request=_to_datetime(window.last_request),
        )

    def get_global_stats(self, recent_limit: int = 10) -> GlobalStats:
        return GlobalStats(
            summary=self._store.summary(),
            recent_activity=self._store.recent(recent_limit),
        )
