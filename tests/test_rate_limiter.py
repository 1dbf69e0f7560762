from __future__ import annotations

import pytest

from core.errors import AppException, ErrorCode
from core.rate_limiter import MemoryRateLimitStore, RateLimiter, RedisRateLimitStore


class _Clock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def _limiter() -> tuple[RateLimiter, MemoryRateLimitStore, _Clock]:
    store = MemoryRateLimitStore()
    clock = _Clock()
    return RateLimiter(store, clock=clock), store, clock


@pytest.mark.asyncio
async def test_limit_plus_one_call_is_rejected_with_cooldown():
    limiter, store, clock = _limiter()

    for _ in range(50):
        await limiter.check_and_increment("U1", limit=50, window_ms=60_000, operation="presign")
        clock.now += 100

    with pytest.raises(AppException) as exc_info:
        await limiter.check_and_increment("U1", limit=50, window_ms=60_000, operation="presign")

    exc = exc_info.value
    assert exc.status_code == 429
    assert exc.code == ErrorCode.TOO_MANY_REQUESTS
    assert exc.detail["details"]["minutes_remaining"] == 1
    assert exc.headers["Retry-After"] == "55"
    assert store.get(principal_id="U1", operation="presign").count == 50


@pytest.mark.asyncio
async def test_window_reset_restarts_count_at_one():
    limiter, store, clock = _limiter()

    for _ in range(3):
        await limiter.check_and_increment("U1", limit=3, window_ms=60_000, operation="presign")
    with pytest.raises(AppException):
        await limiter.check_and_increment("U1", limit=3, window_ms=60_000, operation="presign")

    clock.now += 60_001
    await limiter.check_and_increment("U1", limit=3, window_ms=60_000, operation="presign")

    entry = store.get(principal_id="U1", operation="presign")
    assert entry.count == 1
    assert entry.window_start == clock.now


@pytest.mark.asyncio
async def test_window_boundary_is_still_inside_window():
    limiter, _store, clock = _limiter()

    await limiter.check_and_increment("U1", limit=1, window_ms=1_000, operation="presign")
    clock.now += 1_000

    with pytest.raises(AppException):
        await limiter.check_and_increment("U1", limit=1, window_ms=1_000, operation="presign")


@pytest.mark.asyncio
async def test_entries_are_scoped_by_principal_and_operation():
    limiter, store, _clock = _limiter()

    await limiter.check_and_increment("U1", limit=1, window_ms=60_000, operation="presign")
    await limiter.check_and_increment("U2", limit=1, window_ms=60_000, operation="presign")
    await limiter.check_and_increment("U1", limit=1, window_ms=60_000, operation="retry")

    assert len(store) == 3


@pytest.mark.asyncio
async def test_cooldown_reports_whole_minutes_remaining():
    limiter, _store, clock = _limiter()

    await limiter.check_and_increment("U1", limit=1, window_ms=5 * 60_000, operation="presign")
    clock.now += 30_000

    with pytest.raises(AppException) as exc_info:
        await limiter.check_and_increment("U1", limit=1, window_ms=5 * 60_000, operation="presign")

    assert exc_info.value.detail["details"]["minutes_remaining"] == 5
    assert "5 minutes" in exc_info.value.message


@pytest.mark.asyncio
async def test_sweep_evicts_only_expired_entries():
    limiter, store, clock = _limiter()

    await limiter.check_and_increment("U1", limit=5, window_ms=1_000, operation="presign")
    clock.now += 500
    await limiter.check_and_increment("U2", limit=5, window_ms=1_000, operation="presign")
    clock.now += 600

    evicted = await limiter.sweep()

    assert evicted == 1
    assert store.get(principal_id="U1", operation="presign") is None
    assert store.get(principal_id="U2", operation="presign") is not None


class _FakeScript:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def __call__(self, *, keys, args):
        self.calls.append((keys, args))
        return self.responses.pop(0)


class _FakeRedis:
    def __init__(self, script: _FakeScript) -> None:
        self.script = script

    def register_script(self, _source: str):
        return self.script


@pytest.mark.asyncio
async def test_redis_store_maps_script_results_to_decisions():
    script = _FakeScript([[1, 60_000], [-1, 42_000]])
    limiter = RateLimiter(RedisRateLimitStore(_FakeRedis(script)))

    await limiter.check_and_increment("U1", limit=1, window_ms=60_000, operation="presign")
    with pytest.raises(AppException) as exc_info:
        await limiter.check_and_increment("U1", limit=1, window_ms=60_000, operation="presign")

    assert exc_info.value.headers["Retry-After"] == "42"
    keys, args = script.calls[0]
    assert keys == ["ratelimit:presign:U1"]
    assert args == [1, 60_000]
