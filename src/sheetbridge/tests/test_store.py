"""Tests for key-value store backends."""

from __future__ import annotations

import math

import pytest
from conftest import FakeClock

from sheetbridge.foundation.config import StoreSettings
from sheetbridge.io.store import MemoryStore, RedisStore, create_store


class MockAsyncRedisClient:
    """In-memory mock of the async Redis client, including the sliding-window script."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}
        self._zsets: dict[str, dict[str, float]] = {}
        self.evals: list[tuple[object, ...]] = []
        self.closed = False

    def _alive(self, key: str) -> bool:
        if key in self._data and self._data[key][1] <= self._clock():
            del self._data[key]
        return key in self._data

    async def get(self, key: str) -> bytes | None:
        return self._data[key][0].encode() if self._alive(key) else None

    async def setex(self, name: str, time: int, value: str) -> bool:
        self._data[name] = (value, self._clock() + time)
        return True

    async def expire(self, name: str, time: int) -> bool:
        if self._alive(name):
            self._data[name] = (self._data[name][0], self._clock() + time)
            return True
        return name in self._zsets

    async def exists(self, *names: str) -> int:
        return sum(1 for n in names if self._alive(n))

    async def delete(self, *names: str) -> int:
        return sum(1 for n in names if self._data.pop(n, None) is not None)

    async def eval(self, script: str, numkeys: int, *keys_and_args: str) -> list[object]:
        self.evals.append(keys_and_args)
        key, now, window, quota, member = keys_and_args
        now_f, window_f, quota_i = float(now), float(window), int(quota)
        zset = self._zsets.setdefault(key, {})
        for m in [m for m, score in zset.items() if score <= now_f - window_f]:
            del zset[m]
        count = len(zset)
        oldest = min(zset.values()) if zset else None
        if count >= quota_i:
            return [0, count, repr(oldest).encode() if oldest is not None else b""]
        zset[member] = now_f
        return [1, count + 1, repr(min(zset.values())).encode()]

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True


# ─────────────────────────────────────────────────────────────────────────────
# MemoryStore
# ─────────────────────────────────────────────────────────────────────────────


class TestMemoryStore:
    @pytest.mark.asyncio
    async def test_get_set(self) -> None:
        store = MemoryStore()
        await store.set("k", "v", ttl=60)
        assert await store.get("k") == "v"
        assert await store.exists("k")
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_ttl_expiry_is_passive(self, clock: FakeClock) -> None:
        store = MemoryStore(clock=clock)
        await store.set("k", "v", ttl=10)
        clock.advance(9.5)
        assert await store.get("k") == "v"
        clock.advance(0.5)
        assert await store.get("k") is None
        assert not await store.exists("k")

    @pytest.mark.asyncio
    async def test_expire_extends_live_entry_only(self, clock: FakeClock) -> None:
        store = MemoryStore(clock=clock)
        await store.set("k", "v", ttl=10)
        clock.advance(8)
        assert await store.expire("k", 10)
        clock.advance(8)
        assert await store.get("k") == "v"
        clock.advance(3)
        assert not await store.expire("k", 10)

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        store = MemoryStore()
        await store.set("k", "v", ttl=60)
        assert await store.delete("k")
        assert not await store.delete("k")

    @pytest.mark.asyncio
    async def test_eviction_at_capacity(self, clock: FakeClock) -> None:
        store = MemoryStore(clock=clock, max_entries=4)
        for i in range(4):
            await store.set(f"k{i}", "v", ttl=10 + i)
        await store.set("new", "v", ttl=100)
        assert store.size <= 4
        assert await store.get("new") == "v"
        assert await store.get("k0") is None  # soonest to expire goes first

    @pytest.mark.asyncio
    async def test_window_admits_up_to_quota(self) -> None:
        store = MemoryStore()
        states = [await store.window_admit("w", 100.0 + i, 60, 3) for i in range(4)]
        assert [s.admitted for s in states] == [True, True, True, False]
        assert [s.count for s in states] == [1, 2, 3, 3]
        assert states[-1].oldest == 100.0

    @pytest.mark.asyncio
    async def test_window_drops_entries_at_cutoff(self) -> None:
        store = MemoryStore()
        await store.window_admit("w", 100.0, 60, 1)
        assert not (await store.window_admit("w", 159.9, 60, 1)).admitted
        state = await store.window_admit("w", 160.0, 60, 1)
        assert state.admitted and state.count == 1 and state.oldest == 160.0

    @pytest.mark.asyncio
    async def test_stale_windows_are_evicted(self, clock: FakeClock) -> None:
        store = MemoryStore(clock=clock, max_entries=4)
        for i in range(4):
            await store.window_admit(f"ratelimit:u{i}", clock(), 60, 10)
        assert store.size == 4
        clock.advance(61)
        await store.window_admit("ratelimit:u4", clock(), 60, 10)
        assert store.size == 1

    @pytest.mark.asyncio
    async def test_live_windows_share_capacity_with_values(self, clock: FakeClock) -> None:
        store = MemoryStore(clock=clock, max_entries=4)
        for i in range(4):
            await store.window_admit(f"ratelimit:u{i}", clock(), 60, 10)
        await store.set("idem:k1", "v", ttl=3600)
        assert store.size <= 4
        assert await store.get("idem:k1") == "v"
        # the window created first expires first and was dropped
        state = await store.window_admit("ratelimit:u0", clock(), 60, 10)
        assert state.count == 1


# ─────────────────────────────────────────────────────────────────────────────
# RedisStore
# ─────────────────────────────────────────────────────────────────────────────


class TestRedisStore:
    @pytest.mark.asyncio
    async def test_prefixed_keys_and_whole_second_ttl(self, clock: FakeClock) -> None:
        client = MockAsyncRedisClient(clock)
        store = RedisStore(client, prefix="sb:")
        await store.set("workbookSession:default:wb1", "session", ttl=0.4)
        assert "sb:workbookSession:default:wb1" in client._data
        assert client._data["sb:workbookSession:default:wb1"][1] == clock() + 1
        assert await store.get("workbookSession:default:wb1") == "session"

    @pytest.mark.asyncio
    async def test_expire_exists_delete(self, clock: FakeClock) -> None:
        store = RedisStore(MockAsyncRedisClient(clock))
        await store.set("k", "v", ttl=5)
        clock.advance(4)
        assert await store.expire("k", 5)
        clock.advance(4)
        assert await store.exists("k")
        assert await store.delete("k")
        assert not await store.exists("k")

    @pytest.mark.asyncio
    async def test_window_admit_runs_script_with_float_scores(self, clock: FakeClock) -> None:
        client = MockAsyncRedisClient(clock)
        store = RedisStore(client)
        first = await store.window_admit("rate:u1", 100.25, 60.0, 2)
        await store.window_admit("rate:u1", 101.5, 60.0, 2)
        denied = await store.window_admit("rate:u1", 102.0, 60.0, 2)

        assert first.admitted and first.count == 1 and first.oldest == 100.25
        assert not denied.admitted and denied.count == 2
        assert denied.oldest == 100.25
        key, now, window, quota, member = client.evals[0]
        assert key == "sheetbridge:rate:u1"
        assert (float(now), float(window), int(quota)) == (100.25, 60.0, 2)
        assert member != client.evals[1][4]

    @pytest.mark.asyncio
    async def test_ping_and_close(self, clock: FakeClock) -> None:
        client = MockAsyncRedisClient(clock)
        store = RedisStore(client)
        assert await store.ping()
        await store.close()
        assert client.closed


def test_create_store_selects_backend() -> None:
    assert isinstance(create_store(StoreSettings()), MemoryStore)
    assert StoreSettings(redis_url="redis://localhost:6379/0").backend == "redis"


def test_ttl_rounding_never_hits_zero() -> None:
    from sheetbridge.io.store.redis import _seconds
    assert _seconds(0.01) == 1
    assert _seconds(300) == 300
    assert _seconds(2.5) == math.ceil(2.5)
