"""Tests for the usage introspection service."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.base import AbstractWindowStore
from app.core.policies import get_policy
from app.services.usage import UsageService

GENERAL = get_policy("general")


@pytest.fixture
def usage(store, clock) -> UsageService:
    return UsageService(store, clock=clock)


def _utc(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def test_absent_identifier_reports_fresh_window(usage, clock) -> None:
    report = usage.get_usage("nobody", GENERAL)

    assert report.current_usage == 0
    assert report.limit == 60
    assert report.remaining == 60
    assert report.window_ms == 60_000
    assert report.reset_time == _utc(clock.current + 60)
    assert report.last_request is None


def test_reports_live_window(usage, store, clock) -> None:
    start = clock.current
    for _ in range(3):
        store.admit_and_count("user-1", window_ms=GENERAL.window_ms, quota=GENERAL.quota)
    clock.advance(10)

    report = usage.get_usage("user-1", GENERAL)

    assert report.current_usage == 3
    assert report.remaining == 57
    assert report.reset_time == _utc(start + 60)
    assert report.last_request == _utc(start)


def test_expired_window_reports_zero_usage(usage, store, clock) -> None:
    store.admit_and_count("user-1", window_ms=GENERAL.window_ms, quota=GENERAL.quota)
    last = clock.current
    clock.advance(61)

    report = usage.get_usage("user-1", GENERAL)

    assert report.current_usage == 0
    assert report.remaining == GENERAL.quota
    assert report.reset_time == _utc(clock.current + 60)
    assert report.last_request == _utc(last)


def test_get_usage_is_idempotent(usage, store) -> None:
    store.admit_and_count("user-1", window_ms=GENERAL.window_ms, quota=GENERAL.quota)

    assert usage.get_usage("user-1", GENERAL) == usage.get_usage("user-1", GENERAL)
    assert usage.get_usage("ghost", GENERAL) == usage.get_usage("ghost", GENERAL)
    assert store.peek("user-1").count == 1


def test_get_usage_never_writes() -> None:
    store = Mock(spec=AbstractWindowStore)
    store.peek.return_value = None
    store.now.return_value = 1_700_000_000.0

    UsageService(store).get_usage("user-1", GENERAL)

    store.admit_and_count.assert_not_called()
    store.decrement.assert_not_called()


def test_global_stats(usage, store, clock) -> None:
    store.admit_and_count("a", window_ms=60_000, quota=10)
    clock.advance(1)
    store.admit_and_count("b", window_ms=60_000, quota=10)
    store.admit_and_count("b", window_ms=60_000, quota=10)

    stats = usage.get_global_stats(recent_limit=1)

    assert stats.summary.total_identifiers == 2
    assert stats.summary.total_requests == 3
    assert stats.summary.average_requests_per_identifier == 1.5
    assert [w.identifier for w in stats.recent_activity] == ["b"]
