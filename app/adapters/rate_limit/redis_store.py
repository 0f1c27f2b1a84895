"""Redis-backed fixed-window counter store.

Layout (all keys under ``key_prefix``):
- ``{prefix}window:{identifier}``: hash with ``count``, ``window_start`` and
  ``last_request`` (epoch milliseconds). Expires at ``window_start + retention``.
- ``{prefix}recent``: sorted set of identifiers scored by ``last_request``,
  used for the recent-activity and summary reads.

The check-and-increment runs as a Lua script so Redis evaluates the rollover
guard, the quota check and the increment in a single atomic step.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

import redis
from redis.exceptions import RedisError

from app.adapters.rate_limit.base import (
    AbstractWindowStore,
    CountResult,
    UsageSummary,
    UsageWindow,
    build_summary,
)
from app.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# KEYS: window hash, recent index
# ARGV: identifier, now_ms, window_ms, quota, expire_at_ms
_ADMIT_AND_COUNT_LUA = """
local state = redis.call('HMGET', KEYS[1], 'count', 'window_start')
local count = tonumber(state[1])
local window_start = tonumber(state[2])
local now = tonumber(ARGV[2])

if count == nil or window_start == nil or now - window_start >= tonumber(ARGV[3]) then
  redis.call('HSET', KEYS[1], 'count', 1, 'window_start', ARGV[2], 'last_request', ARGV[2])
  redis.call('PEXPIREAT', KEYS[1], ARGV[5])
  redis.call('ZADD', KEYS[2], ARGV[2], ARGV[1])
  return {1, 1, ARGV[2]}
end

if count >= tonumber(ARGV[4]) then
  return {0, count, state[2]}
end

count = redis.call('HINCRBY', KEYS[1], 'count', 1)
redis.call('HSET', KEYS[1], 'last_request', ARGV[2])
redis.call('ZADD', KEYS[2], ARGV[2], ARGV[1])
return {1, count, state[2]}
"""

# KEYS: window hash
_DECREMENT_LUA = """
local count = tonumber(redis.call('HGET', KEYS[1], 'count'))
if count ~= nil and count > 0 then
  return redis.call('HINCRBY', KEYS[1], 'count', -1)
end
return 0
"""


def _to_seconds(value: Any) -> float:
    return int(value) / 1000


class RedisWindowStore(AbstractWindowStore):
    """Window counter store shared across workers through Redis."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "rl:",
        retention_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the Redis store.

        Args:
            client: Redis client created with ``decode_responses=True``.
            key_prefix: Namespace for every key this store writes.
            retention_seconds: Windows expire this long after window_start.
            clock: Time source function returning UNIX time in seconds.
        """
        if retention_seconds < 1:
            raise ValueError("retention_seconds must be >= 1")

        self._client = client
        self._prefix = key_prefix
        self._retention_ms = retention_seconds * 1000
        self._clock = clock
        self._index_key = f"{key_prefix}recent"
        self._admit_script = client.register_script(_ADMIT_AND_COUNT_LUA)
        self._decrement_script = client.register_script(_DECREMENT_LUA)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        timeout_seconds: float,
        key_prefix: str = "rl:",
        retention_seconds: int = 3600,
    ) -> "RedisWindowStore":
        """Build a store whose every call is bounded by ``timeout_seconds``."""

        client = redis.Redis.from_url(
            url,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
            decode_responses=True,
        )
        return cls(client, key_prefix=key_prefix, retention_seconds=retention_seconds)

    def _window_key(self, identifier: str) -> str:
        return f"{self._prefix}window:{identifier}"

    def now(self) -> float:
        return self._clock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _call(self, operation: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except RedisError as exc:
            raise StoreUnavailableError(
                code="rate_limit_store_unavailable",
                message=f"Redis window store failed during {operation}",
                details={
                    "backend": "redis",
                    "operation": operation,
                    "context": {"error_type": type(exc).__name__},
                },
            ) from exc

    def _load_windows(self, identifiers: list[str]) -> list[UsageWindow]:
        pipe = self._client.pipeline(transaction=False)
        for identifier in identifiers:
            pipe.hgetall(self._window_key(identifier))
        rows = pipe.execute()

        windows = []
        for identifier, row in zip(identifiers, rows):
            if not row:
                # Hash expired; the index entry is trimmed by purge_expired.
                continue
            windows.append(
                UsageWindow(
                    identifier=identifier,
                    count=int(row["count"]),
                    window_start=_to_seconds(row["window_start"]),
                    last_request=_to_seconds(row["last_request"]),
                )
            )
        return windows

    def admit_and_count(self, identifier: str, *, window_ms: int, quota: int) -> CountResult:
        if not identifier:
            raise ValueError("identifier must be a non-empty string")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if quota < 1:
            raise ValueError("quota must be >= 1")

        now_ms = self._now_ms()
        admitted, count, window_start = self._call(
            "admit_and_count",
            lambda: self._admit_script(
                keys=[self._window_key(identifier), self._index_key],
                args=[identifier, now_ms, window_ms, quota, now_ms + self._retention_ms],
            ),
        )
        return CountResult(
            admitted=bool(int(admitted)),
            count=int(count),
            window_start=_to_seconds(window_start),
            observed_at=now_ms / 1000,
        )

    def decrement(self, identifier: str) -> None:
        self._call(
            "decrement",
            lambda: self._decrement_script(keys=[self._window_key(identifier)]),
        )

    def peek(self, identifier: str) -> UsageWindow | None:
        windows = self._call("peek", lambda: self._load_windows([identifier]))
        return windows[0] if windows else None

    def summary(self) -> UsageSummary:
        def _read() -> list[UsageWindow]:
            identifiers = self._client.zrange(self._index_key, 0, -1)
            return self._load_windows(identifiers)

        return build_summary(self._call("summary", _read))

    def recent(self, limit: int = 10) -> list[UsageWindow]:
        if limit < 1:
            return []

        def _read() -> list[UsageWindow]:
            windows: list[UsageWindow] = []
            start = 0
            while len(windows) < limit:
                identifiers = self._client.zrevrange(self._index_key, start, start + limit - 1)
                if not identifiers:
                    break
                windows.extend(self._load_windows(identifiers))
                start += limit
            return windows[:limit]

        return self._call("recent", _read)

    def purge_expired(self, now: float | None = None) -> int:
        """Trim index entries whose window hash has expired.

        The hashes themselves are removed by Redis key expiry.
        """

        now_ms = self._now_ms() if now is None else int(now * 1000)

        def _purge() -> int:
            removed = self._client.zremrangebyscore(
                self._index_key, "-inf", now_ms - self._retention_ms
            )
            identifiers = self._client.zrange(self._index_key, 0, -1)
            if not identifiers:
                return int(removed)

            pipe = self._client.pipeline(transaction=False)
            for identifier in identifiers:
                pipe.exists(self._window_key(identifier))
            dangling = [
                identifier
                for identifier, exists in zip(identifiers, pipe.execute())
                if not exists
            ]
            if dangling:
                removed += self._client.zrem(self._index_key, *dangling)
            return int(removed)

        removed = self._call("purge_expired", _purge)
        if removed:
            logger.debug("rate_limit.index_trimmed", extra={"removed": removed})
        return removed

    def ping(self) -> None:
        self._call("ping", self._client.ping)
