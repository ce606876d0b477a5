"""Tests for RefreshScheduler."""

import asyncio

import pytest

from app.gold.broadcaster import Broadcaster
from app.gold.cache import PriceCache
from app.gold.chain import ProviderChain
from app.gold.errors import ProviderUnavailable
from app.gold.query import QueryService
from app.gold.scheduler import RefreshScheduler, RefreshState


def make_scheduler(provider, symbols=("XAUUSD",), interval: float = 60.0, broadcaster=None):
    chain = ProviderChain([provider])
    cache = PriceCache()
    return RefreshScheduler(chain, cache, broadcaster, symbols=list(symbols), interval=interval), cache


@pytest.mark.asyncio
class TestRefreshScheduler:
    """Tests for the refresh loop."""

    async def test_start_warms_cache_immediately(self, fake_provider):
        scheduler, cache = make_scheduler(fake_provider("primary"), symbols=("XAUUSD", "GLD"))
        await scheduler.start()
        await scheduler.wait_idle()

        assert cache.get_record("XAUUSD") is not None
        assert cache.get_record("GLD") is not None
        assert scheduler.running
        await scheduler.stop()

    async def test_overlapping_tick_skipped(self, fake_provider):
        provider = fake_provider("primary")
        provider.block = True
        scheduler, cache = make_scheduler(provider)

        assert scheduler.tick() == ["XAUUSD"]
        await asyncio.sleep(0.01)
        assert scheduler.tick() == []
        assert scheduler.tick() == []

        status = scheduler.status()["XAUUSD"]
        assert status["state"] == RefreshState.FETCHING.value
        assert status["skippedTicks"] == 2
        assert provider.calls == ["XAUUSD"]

        provider.release.set()
        await scheduler.wait_idle()
        assert scheduler.status()["XAUUSD"]["state"] == RefreshState.IDLE.value
        assert scheduler.tick() == ["XAUUSD"]
        await scheduler.stop()

    async def test_failure_keeps_cached_value(self, fake_provider, make_record):
        provider = fake_provider("primary", error=ProviderUnavailable("primary", "down"))
        scheduler, cache = make_scheduler(provider)
        previous = make_record()
        cache.set("XAUUSD", previous)

        scheduler.tick()
        await scheduler.wait_idle()

        assert cache.get_record("XAUUSD") == previous
        assert scheduler.status()["XAUUSD"]["consecutiveFailures"] == 1

    async def test_success_resets_failures(self, fake_provider):
        provider = fake_provider("primary", error=ProviderUnavailable("primary", "down"))
        scheduler, cache = make_scheduler(provider)

        scheduler.tick()
        await scheduler.wait_idle()
        provider.error = None
        scheduler.tick()
        await scheduler.wait_idle()

        status = scheduler.status()["XAUUSD"]
        assert status["consecutiveFailures"] == 0
        assert status["lastSuccess"] is not None
        assert cache.get_record("XAUUSD") is not None

    async def test_success_is_published(self, fake_provider):
        provider = fake_provider("primary", price=2060.0)
        chain = ProviderChain([provider])
        cache = PriceCache()
        broadcaster = Broadcaster(QueryService(cache, chain))
        scheduler = RefreshScheduler(chain, cache, broadcaster, symbols=["XAUUSD"])

        frames = []

        async def send(frame):
            frames.append(frame)

        await broadcaster.subscribe(send)
        frames.clear()
        scheduler.tick()
        await scheduler.wait_idle()
        async with asyncio.timeout(1.0):
            while not frames:
                await asyncio.sleep(0.005)

        assert frames[-1]["data"]["price"] == 2060.0
        await broadcaster.close()

    async def test_watched_symbol_outside_refresh_set_keeps_streaming(self, fake_provider):
        provider = fake_provider("primary")
        chain = ProviderChain([provider])
        cache = PriceCache()
        broadcaster = Broadcaster(QueryService(cache, chain))
        scheduler = RefreshScheduler(chain, cache, broadcaster, symbols=["XAUUSD"])

        frames = []

        async def send(frame):
            frames.append(frame)

        sub = await broadcaster.subscribe(send, {"GLD"})
        for _ in range(3):
            assert scheduler.tick() == ["XAUUSD", "GLD"]
            await scheduler.wait_idle()
        async with asyncio.timeout(1.0):
            while len(frames) < 4:
                await asyncio.sleep(0.005)

        assert {f["data"]["symbol"] for f in frames} == {"GLD"}
        assert "GLD" in scheduler.status()

        broadcaster.unsubscribe(sub)
        assert scheduler.tick() == ["XAUUSD"]
        await scheduler.stop()
        await broadcaster.close()

    async def test_loop_ticks_on_interval(self, fake_provider):
        provider = fake_provider("primary")
        scheduler, _ = make_scheduler(provider, interval=0.05)

        await scheduler.start()
        await asyncio.sleep(0.18)
        await scheduler.stop()

        assert len(provider.calls) >= 3

    async def test_stop_is_idempotent(self, fake_provider):
        provider = fake_provider("primary")
        provider.block = True
        scheduler, _ = make_scheduler(provider)

        await scheduler.start()
        await asyncio.sleep(0.01)
        await scheduler.stop()
        await scheduler.stop()

        assert not scheduler.running
        assert scheduler.status()["XAUUSD"]["state"] == RefreshState.IDLE.value

    async def test_duplicate_symbols_collapsed(self, fake_provider):
        scheduler, _ = make_scheduler(fake_provider("primary"), symbols=("GC", "GC", "GLD"))
        assert scheduler.symbols == ["GC", "GLD"]
