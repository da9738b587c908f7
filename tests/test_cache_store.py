import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from rivue.models import Base
from rivue.services.cache_store import MemoryCacheStore, SqlCacheStore


class FakeTimer:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ── Memory backend ────────────────────────────────────────────────────────────


def test_memory_store_roundtrip_and_copy_semantics():
    async def scenario():
        store = MemoryCacheStore()
        value = {"reviews": [1, 2]}
        await store.set("k", value, 60)
        value["reviews"].append(3)
        got = await store.get("k")
        got["reviews"].append(4)
        return got, await store.get("k")

    got, again = asyncio.run(scenario())
    assert got == {"reviews": [1, 2, 4]}
    assert again == {"reviews": [1, 2]}


def test_memory_store_expired_entry_is_deleted_on_read():
    timer = FakeTimer()

    async def scenario():
        store = MemoryCacheStore(timer=timer)
        await store.set("short", "x", 10)
        await store.set("long", "y", 100)
        timer.now += 11
        missing = await store.get("short")
        return missing, await store.size(), await store.get("long")

    missing, size, long_value = asyncio.run(scenario())
    assert missing is None
    assert size == 1
    assert long_value == "y"


def test_memory_store_sweep_counts_removed_entries():
    timer = FakeTimer()

    async def scenario():
        store = MemoryCacheStore(timer=timer)
        for i in range(3):
            await store.set(f"k{i}", i, 5)
        await store.set("keep", 1, 500)
        timer.now += 10
        removed = await store.sweep()
        return removed, await store.size(), await store.stats()

    removed, size, stats = asyncio.run(scenario())
    assert removed == 3
    assert size == 1
    assert stats == {"type": "memory", "size": 1}


def test_memory_store_delete_clear_and_has():
    async def scenario():
        store = MemoryCacheStore()
        await store.set("a", 1)
        await store.set("b", 2)
        await store.delete("a")
        await store.delete("does-not-exist")
        had_b = await store.has("b")
        await store.clear()
        return had_b, await store.has("a"), await store.size()

    assert asyncio.run(scenario()) == (True, False, 0)


def test_sweeper_task_starts_and_stops():
    async def scenario():
        store = MemoryCacheStore()
        store.start_sweeper(3600)
        running = store._sweeper is not None and not store._sweeper.done()
        await store.close()
        return running, store._sweeper

    running, sweeper = asyncio.run(scenario())
    assert running
    assert sweeper is None


# ── SQL backend ───────────────────────────────────────────────────────────────


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}"


def _sql_scenario(url: str, clock: FakeClock, body):
    async def run():
        engine = create_async_engine(url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        store = SqlCacheStore(async_sessionmaker(engine, expire_on_commit=False), clock=clock)
        try:
            return await body(store)
        finally:
            await engine.dispose()

    return asyncio.run(run())


def test_sql_store_upsert_and_expiry(sqlite_url):
    clock = FakeClock()

    async def body(store):
        await store.set("meta:1", {"reviewCount": 1}, 60)
        await store.set("meta:1", {"reviewCount": 2}, 60)
        fresh = await store.get("meta:1")
        clock.advance(61)
        stale = await store.get("meta:1")
        return fresh, stale, await store.size()

    fresh, stale, size = _sql_scenario(sqlite_url, clock, body)
    assert fresh == {"reviewCount": 2}
    assert stale is None
    assert size == 0


def test_sql_store_sweep_and_clear(sqlite_url):
    clock = FakeClock()

    async def body(store):
        await store.set("old", [1], 5)
        await store.set("new", [2], 500)
        clock.advance(10)
        removed = await store.sweep()
        remaining = await store.get("new")
        await store.clear()
        return removed, remaining, await store.stats()

    removed, remaining, stats = _sql_scenario(sqlite_url, clock, body)
    assert removed == 1
    assert remaining == [2]
    assert stats == {"type": "sql", "size": 0}
