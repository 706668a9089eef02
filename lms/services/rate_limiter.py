"""Token-bucket rate limiting for write endpoints.

Each caller key owns a bucket of ``capacity`` tokens refilled at
``refill_rate`` tokens/second; a request spends one token or is refused
with a retry hint.  Bursts up to capacity are allowed, the long-run rate
is bounded by the refill rate.

Two backends share one Protocol:

  InMemoryRateLimiter  single process.  The bucket map is bounded: least
                       recently used keys are evicted past ``max_keys``
                       and buckets idle long enough to have refilled
                       completely are swept, since a full bucket carries
                       no state worth keeping.
  RedisRateLimiter     shared by every API instance; the read-modify-write
                       runs as one Lua script so concurrent requests
                       cannot double-spend a token.

The limiter throttles abuse only.  No correctness property depends on it.
"""

from __future__ import annotations

import math
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int
    retry_after: float  # seconds until the next token, 0 when allowed


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """capacity = burst size; refill_rate = sustained tokens per second."""

    capacity: int = 60
    refill_rate: float = 1.0

    @property
    def full_refill_secs(self) -> float:
        return self.capacity / self.refill_rate


@runtime_checkable
class RateLimiter(Protocol):
    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...
    async def reset(self, key: str) -> None: ...


class InMemoryRateLimiter:
    _SWEEP_EVERY = 256

    def __init__(self, max_keys: int = 10_000) -> None:
        self.max_keys = max_keys
        # key -> (tokens, last_refill, full_refill_secs)
        self._buckets: OrderedDict[str, tuple[float, float, float]] = OrderedDict()
        self._checks = 0

    def __len__(self) -> int:
        return len(self._buckets)

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        return self.check_at(key, config, time.monotonic())

    def check_at(
        self, key: str, config: RateLimitConfig, now: float
    ) -> RateLimitResult:
        self._checks += 1
        if self._checks % self._SWEEP_EVERY == 0:
            self.sweep(now)

        bucket = self._buckets.get(key)
        if bucket is None:
            tokens = float(config.capacity)
        else:
            tokens, last_refill, _ = bucket
            refilled = tokens + (now - last_refill) * config.refill_rate
            tokens = min(config.capacity, refilled)

        if tokens >= 1:
            tokens -= 1
            allowed, retry_after = True, 0.0
        else:
            allowed, retry_after = False, (1 - tokens) / config.refill_rate

        self._buckets[key] = (tokens, now, config.full_refill_secs)
        self._buckets.move_to_end(key)
        while len(self._buckets) > self.max_keys:
            self._buckets.popitem(last=False)

        return RateLimitResult(
            allowed=allowed,
            remaining=int(tokens) if allowed else 0,
            limit=config.capacity,
            retry_after=retry_after,
        )

    def sweep(self, now: float) -> int:
        """Drop buckets that have been idle long enough to be full again."""
        idle = [
            key
            for key, (_, last_refill, full_refill_secs) in self._buckets.items()
            if now - last_refill >= full_refill_secs
        ]
        for key in idle:
            del self._buckets[key]
        return len(idle)

    def clear(self) -> None:
        self._buckets.clear()

    async def reset(self, key: str) -> None:
        self._buckets.pop(key, None)


class RedisRateLimiter:
    # KEYS[1] = bucket key
    # ARGV = capacity, refill_rate, now (seconds, float)
    # returns {allowed 0/1, remaining, retry_after_ms}
    _LUA_SCRIPT = """
    local key = KEYS[1]
    local capacity = tonumber(ARGV[1])
    local refill_rate = tonumber(ARGV[2])
    local now = tonumber(ARGV[3])
    local ttl = math.ceil(capacity / refill_rate) + 60

    local bucket = redis.call('HMGET', key, 'tokens', 'last_refill')
    local tokens = tonumber(bucket[1])
    local last_refill = tonumber(bucket[2])

    if tokens == nil then
        tokens = capacity
    else
        tokens = math.min(capacity, tokens + (now - last_refill) * refill_rate)
    end

    if tokens >= 1 then
        tokens = tokens - 1
        redis.call('HSET', key, 'tokens', tokens, 'last_refill', now)
        redis.call('EXPIRE', key, ttl)
        return {1, math.floor(tokens), 0}
    end

    redis.call('HSET', key, 'tokens', tokens, 'last_refill', now)
    redis.call('EXPIRE', key, ttl)
    return {0, 0, math.ceil((1 - tokens) / refill_rate * 1000)}
    """

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._script = None

    def _get_script(self):
        if self._script is None:
            self._script = self._redis.register_script(self._LUA_SCRIPT)
        return self._script

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        script = self._get_script()
        allowed, remaining, retry_after_ms = await script(
            keys=[f"ratelimit:{key}"],
            args=[config.capacity, config.refill_rate, time.time()],
        )
        return RateLimitResult(
            allowed=bool(allowed),
            remaining=int(remaining),
            limit=config.capacity,
            retry_after=retry_after_ms / 1000,
        )

    async def reset(self, key: str) -> None:
        await self._redis.delete(f"ratelimit:{key}")


def retry_after_header(result: RateLimitResult) -> str:
    return str(max(1, math.ceil(result.retry_after)))
