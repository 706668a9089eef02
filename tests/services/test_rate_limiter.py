from __future__ import annotations

from lms.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
    RedisRateLimiter,
    retry_after_header,
)
from tests.conftest import run

CONFIG = RateLimitConfig(capacity=3, refill_rate=1.0)


def test_burst_up_to_capacity_then_refused() -> None:
    limiter = InMemoryRateLimiter()
    results = [limiter.check_at("user:a", CONFIG, 100.0) for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert results[-1].retry_after == 1.0
    assert results[-1].limit == 3


def test_tokens_refill_over_time() -> None:
    limiter = InMemoryRateLimiter()
    for _ in range(3):
        limiter.check_at("user:a", CONFIG, 100.0)

    assert limiter.check_at("user:a", CONFIG, 100.5).allowed is False
    assert limiter.check_at("user:a", CONFIG, 101.6).allowed is True


def test_keys_are_independent() -> None:
    limiter = InMemoryRateLimiter()
    for _ in range(3):
        limiter.check_at("user:a", CONFIG, 100.0)
    assert limiter.check_at("user:b", CONFIG, 100.0).allowed is True


def test_least_recently_used_keys_are_evicted() -> None:
    limiter = InMemoryRateLimiter(max_keys=2)
    limiter.check_at("a", CONFIG, 100.0)
    limiter.check_at("b", CONFIG, 100.0)
    limiter.check_at("a", CONFIG, 100.0)
    limiter.check_at("c", CONFIG, 100.0)

    assert len(limiter) == 2
    # "b" was evicted, so it starts again from a full bucket
    assert limiter.check_at("b", CONFIG, 100.0).remaining == 2


def test_sweep_drops_fully_refilled_buckets() -> None:
    limiter = InMemoryRateLimiter()
    limiter.check_at("idle", CONFIG, 100.0)
    limiter.check_at("busy", CONFIG, 102.5)

    assert limiter.sweep(103.0) == 1
    assert len(limiter) == 1


def test_reset_forgets_a_key() -> None:
    limiter = InMemoryRateLimiter()
    for _ in range(3):
        limiter.check_at("user:a", CONFIG, 100.0)
    run(limiter.reset("user:a"))
    assert len(limiter) == 0


def test_retry_after_header_rounds_up_to_whole_seconds() -> None:
    result = RateLimitResult(allowed=False, remaining=0, limit=3, retry_after=0.2)
    assert retry_after_header(result) == "1"
    result = RateLimitResult(allowed=False, remaining=0, limit=3, retry_after=4.01)
    assert retry_after_header(result) == "5"


def test_both_backends_satisfy_protocol() -> None:
    assert isinstance(InMemoryRateLimiter(), RateLimiter)
    assert isinstance(RedisRateLimiter(redis_client=None), RateLimiter)


def test_full_refill_secs() -> None:
    assert RateLimitConfig(capacity=120, refill_rate=2.0).full_refill_secs == 60.0
