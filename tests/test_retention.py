"""Tests for the background retention sweeper."""

import asyncio
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.base import AbstractWindowStore
from app.core.errors import StoreUnavailableError
from app.services.retention import RetentionSweeper


@pytest.mark.asyncio
async def test_sweep_once_purges_expired_windows(store, clock) -> None:
    store.admit_and_count("old", window_ms=60_000, quota=5)
    clock.advance(3600)

    sweeper = RetentionSweeper(store, interval_seconds=60)

    assert await sweeper.sweep_once() == 1
    assert store.peek("old") is None


@pytest.mark.asyncio
async def test_sweep_once_survives_store_errors() -> None:
    failing = Mock(spec=AbstractWindowStore)
    failing.purge_expired.side_effect = StoreUnavailableError(
        code="rate_limit_store_unavailable",
        message="down",
    )

    assert await RetentionSweeper(failing).sweep_once() == 0


@pytest.mark.asyncio
async def test_background_loop_runs_and_stops() -> None:
    store = Mock(spec=AbstractWindowStore)
    store.purge_expired.return_value = 0
    sweeper = RetentionSweeper(store, interval_seconds=0.01)

    sweeper.start()
    assert sweeper.running
    await asyncio.sleep(0.1)
    await sweeper.stop()

    assert not sweeper.running
    assert store.purge_expired.call_count >= 1


def test_invalid_interval() -> None:
    with pytest.raises(ValueError):
        RetentionSweeper(Mock(spec=AbstractWindowStore), interval_seconds=0)
