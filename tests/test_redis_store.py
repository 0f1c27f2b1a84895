"""Tests for the Redis window counter store (fakeredis with Lua support)."""

import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, Mock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.adapters.rate_limit.redis_store import RedisWindowStore
from app.core.errors import StoreUnavailableError

fakeredis = pytest.importorskip("fakeredis")
pytest.importorskip("lupa")


@pytest.fixture
def redis_clock(clock):
    # Key expiry is evaluated against the server wall clock.
    clock.current = float(int(time.time()))
    return clock


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def redis_store(redis_client, redis_clock) -> RedisWindowStore:
    return RedisWindowStore(
        redis_client,
        key_prefix="test:",
        retention_seconds=3600,
        clock=redis_clock,
    )


def test_admit_and_count_within_quota(redis_store, redis_clock) -> None:
    results = [redis_store.admit_and_count("k", window_ms=60_000, quota=3) for _ in range(4)]

    assert [r.admitted for r in results] == [True, True, True, False]
    assert [r.count for r in results] == [1, 2, 3, 3]
    assert {r.window_start for r in results} == {redis_clock.current}


def test_rollover_resets_count_and_window_start(redis_store, redis_clock) -> None:
    redis_store.admit_and_count("k", window_ms=1_000, quota=1)
    assert redis_store.admit_and_count("k", window_ms=1_000, quota=1).admitted is False

    redis_clock.advance(1)
    result = redis_store.admit_and_count("k", window_ms=1_000, quota=1)

    assert result.admitted is True
    assert result.count == 1
    assert result.window_start == redis_clock.current
    assert redis_store.peek("k").window_start == redis_clock.current


def test_window_hash_expires_after_retention(redis_store, redis_client) -> None:
    redis_store.admit_and_count("k", window_ms=60_000, quota=5)

    ttl_ms = redis_client.pttl("test:window:k")
    assert 0 < ttl_ms <= 3600 * 1000


def test_peek_and_decrement(redis_store) -> None:
    assert redis_store.peek("k") is None

    redis_store.admit_and_count("k", window_ms=60_000, quota=5)
    redis_store.admit_and_count("k", window_ms=60_000, quota=5)
    redis_store.decrement("k")

    window = redis_store.peek("k")
    assert window.identifier == "k"
    assert window.count == 1

    redis_store.decrement("k")
    redis_store.decrement("k")
    assert redis_store.peek("k").count == 0

    redis_store.decrement("missing")
    assert redis_store.peek("missing") is None


def test_summary_and_recent_order(redis_store, redis_clock) -> None:
    redis_store.admit_and_count("a", window_ms=60_000, quota=10)
    redis_clock.advance(1)
    redis_store.admit_and_count("b", window_ms=60_000, quota=10)
    redis_store.admit_and_count("b", window_ms=60_000, quota=10)
    redis_clock.advance(1)
    redis_store.admit_and_count("c", window_ms=60_000, quota=10)

    summary = redis_store.summary()
    assert summary.total_identifiers == 3
    assert summary.total_requests == 4

    assert [w.identifier for w in redis_store.recent(2)] == ["c", "b"]
    assert [w.identifier for w in redis_store.recent(10)] == ["c", "b", "a"]


def test_reads_skip_and_purge_trims_expired_hashes(redis_store, redis_client) -> None:
    redis_store.admit_and_count("a", window_ms=60_000, quota=10)
    redis_store.admit_and_count("b", window_ms=60_000, quota=10)
    redis_client.delete("test:window:a")

    assert [w.identifier for w in redis_store.recent(10)] == ["b"]
    assert redis_store.summary().total_identifiers == 1

    assert redis_store.purge_expired() == 1
    assert redis_client.zrange("test:recent", 0, -1) == ["b"]


def test_purge_drops_index_entries_past_retention(redis_store, redis_client, redis_clock) -> None:
    redis_store.admit_and_count("a", window_ms=60_000, quota=10)

    removed = redis_store.purge_expired(now=redis_clock.current + 3601)

    assert removed == 1
    assert redis_client.zcard("test:recent") == 0


def test_concurrent_callers_never_over_admit(redis_store) -> None:
    def hit(_: int) -> bool:
        return redis_store.admit_and_count("shared", window_ms=60_000, quota=10).admitted

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(hit, range(50)))

    assert results.count(True) == 10
    assert redis_store.peek("shared").count == 10


@pytest.mark.parametrize("error", [RedisConnectionError("down"), RedisTimeoutError("slow")])
def test_redis_errors_become_store_unavailable(error: Exception) -> None:
    client = MagicMock()
    client.register_script.return_value = Mock(side_effect=error)
    client.ping.side_effect = error
    store = RedisWindowStore(client)

    with pytest.raises(StoreUnavailableError) as exc_info:
        store.admit_and_count("k", window_ms=60_000, quota=1)
    assert exc_info.value.code == "rate_limit_store_unavailable"
    assert exc_info.value.details["operation"] == "admit_and_count"

    with pytest.raises(StoreUnavailableError):
        store.decrement("k")

    with pytest.raises(StoreUnavailableError):
        store.ping()


def test_from_url_bounds_socket_timeouts() -> None:
    store = RedisWindowStore.from_url("redis://localhost:6399/0", timeout_seconds=0.25)

    kwargs = store._client.connection_pool.connection_kwargs
    assert kwargs["socket_timeout"] == 0.25
    assert kwargs["socket_connect_timeout"] == 0.25
