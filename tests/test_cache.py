"""
Tests for the FreshnessCache.

Covers:
- Single-flight refresh under concurrent callers
- TTL freshness with a manual clock
- Stale fallback and cold-start failure
- Waiter cancellation
- Serve-stale-while-refreshing policy
"""

import asyncio
from datetime import timedelta

import pytest

from app.cache import EntryState, FreshnessCache
from app.errors import UpstreamError

from conftest import FakeClock


class CountingSource:
    """Compute function that counts invocations and can be gated or failed."""

    def __init__(self, values=None):
        self.calls = 0
        self.values = list(values or [])
        self.fail_with = None
        self.gate = None

    async def __call__(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        if self.values:
            return self.values.pop(0)
        return f"value-{self.calls}"


@pytest.fixture
def cache(clock):
    return FreshnessCache({"supply": timedelta(minutes=30)}, clock=clock)


@pytest.mark.asyncio
async def test_concurrent_cold_callers_trigger_one_compute(cache):
    source = CountingSource()
    source.gate = asyncio.Event()

    waiters = [asyncio.create_task(cache.get("supply", source)) for _ in range(25)]
    await asyncio.sleep(0)
    assert cache.entry("supply").state is EntryState.REFRESHING

    source.gate.set()
    results = await asyncio.gather(*waiters)

    assert source.calls == 1
    assert set(results) == {"value-1"}
    assert cache.entry("supply").state is EntryState.IDLE


@pytest.mark.asyncio
async def test_repeated_gets_within_ttl_are_identical(cache, clock):
    source = CountingSource(values=[{"total": 1}])

    first = await cache.get("supply", source)
    clock.advance(minutes=29, seconds=59)
    second = await cache.get("supply", source)

    assert second is first
    assert source.calls == 1


@pytest.mark.asyncio
async def test_expired_entry_is_recomputed(cache, clock):
    source = CountingSource()

    assert await cache.get("supply", source) == "value-1"
    clock.advance(minutes=30)
    assert await cache.get("supply", source) == "value-2"
    assert source.calls == 2


@pytest.mark.asyncio
async def test_failure_with_previous_value_serves_stale(cache, clock):
    source = CountingSource()
    first = await cache.get("supply", source)
    computed_at = cache.entry("supply").computed_at

    clock.advance(hours=1)
    source.fail_with = UpstreamError("rpc down")

    assert await cache.get("supply", source) == first
    entry = cache.entry("supply")
    assert entry.computed_at == computed_at
    assert entry.last_error == "rpc down"
    assert entry.state is EntryState.IDLE


@pytest.mark.asyncio
async def test_stale_value_is_retried_on_next_request(cache, clock):
    source = CountingSource()
    await cache.get("supply", source)
    clock.advance(hours=1)

    source.fail_with = UpstreamError("rpc down")
    await cache.get("supply", source)
    source.fail_with = None

    assert await cache.get("supply", source) == "value-3"
    assert source.calls == 3
    assert cache.entry("supply").last_error is None


@pytest.mark.asyncio
async def test_cold_failure_propagates_and_caches_nothing(cache):
    source = CountingSource()
    source.fail_with = UpstreamError("rpc down")

    with pytest.raises(UpstreamError):
        await cache.get("supply", source)

    entry = cache.entry("supply")
    assert not entry.has_value
    assert entry.value is None
    assert entry.refresh_task is None


@pytest.mark.asyncio
async def test_cold_failure_reaches_every_waiter_once(cache):
    source = CountingSource()
    source.gate = asyncio.Event()
    source.fail_with = RuntimeError("boom")

    waiters = [asyncio.create_task(cache.get("supply", source)) for _ in range(5)]
    await asyncio.sleep(0)
    source.gate.set()
    results = await asyncio.gather(*waiters, return_exceptions=True)

    assert source.calls == 1
    assert all(isinstance(result, UpstreamError) for result in results)


@pytest.mark.asyncio
async def test_non_upstream_errors_are_wrapped(cache):
    source = CountingSource()
    source.fail_with = KeyError("decimals")

    with pytest.raises(UpstreamError) as excinfo:
        await cache.get("supply", source)
    assert isinstance(excinfo.value.__cause__, KeyError)


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_refresh(cache):
    source = CountingSource()
    source.gate = asyncio.Event()

    impatient = asyncio.create_task(cache.get("supply", source))
    patient = asyncio.create_task(cache.get("supply", source))
    await asyncio.sleep(0)

    impatient.cancel()
    with pytest.raises(asyncio.CancelledError):
        await impatient

    source.gate.set()
    assert await patient == "value-1"
    assert cache.entry("supply").has_value
    assert source.calls == 1


@pytest.mark.asyncio
async def test_keys_are_independent(clock):
    cache = FreshnessCache(
        {"supply": timedelta(minutes=30), "prices": timedelta(minutes=5)},
        clock=clock,
    )
    supply = CountingSource()
    prices = CountingSource()

    await cache.get("supply", supply)
    await cache.get("prices", prices)
    clock.advance(minutes=10)
    await cache.get("supply", supply)
    await cache.get("prices", prices)

    assert supply.calls == 1
    assert prices.calls == 2


@pytest.mark.asyncio
async def test_unknown_keys_use_default_ttl(clock):
    cache = FreshnessCache(default_ttl=timedelta(seconds=10), clock=clock)
    source = CountingSource()

    await cache.get("other", source)
    clock.advance(seconds=9)
    await cache.get("other", source)
    assert source.calls == 1
    assert cache.ttl_for("other") == timedelta(seconds=10)


@pytest.mark.asyncio
async def test_serve_stale_policy_returns_immediately(clock):
    cache = FreshnessCache(
        {"supply": timedelta(minutes=30)},
        clock=clock,
        serve_stale_while_refreshing=True,
    )
    source = CountingSource()
    assert await cache.get("supply", source) == "value-1"

    clock.advance(hours=1)
    source.gate = asyncio.Event()

    # Stale value comes back while the refresh is still blocked
    assert await cache.get("supply", source) == "value-1"
    assert await cache.get("supply", source) == "value-1"
    assert cache.entry("supply").state is EntryState.REFRESHING

    source.gate.set()
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert await cache.get("supply", source) == "value-2"
    assert source.calls == 2


@pytest.mark.asyncio
async def test_serve_stale_policy_still_waits_when_cold(clock):
    cache = FreshnessCache(clock=clock, serve_stale_while_refreshing=True)
    source = CountingSource()

    assert await cache.get("supply", source) == "value-1"


@pytest.mark.asyncio
async def test_snapshot_reports_entry_state(cache, clock):
    source = CountingSource()
    await cache.get("supply", source)
    clock.advance(seconds=90)

    snapshot = cache.snapshot()

    assert snapshot["supply"]["has_value"] is True
    assert snapshot["supply"]["fresh"] is True
    assert snapshot["supply"]["age_seconds"] == 90
    assert snapshot["supply"]["ttl_seconds"] == 1800
    assert snapshot["supply"]["state"] == "idle"


def test_fake_clock_advances():
    clock = FakeClock()
    start = clock.now()
    clock.advance(minutes=5)
    assert clock.now() - start == timedelta(minutes=5)
