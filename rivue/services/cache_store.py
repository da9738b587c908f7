"""
Cache store — key → (value, expiry) with per-entry TTLs.

Two backends share one async interface:

  MemoryCacheStore  cachetools TLRUCache (per-item time-to-use), values kept
                    as JSON strings so callers can never mutate cached data
                    in place.
  SqlCacheStore     cache_entries table via async SQLAlchemy, for deployments
                    that want the cache to survive restarts (Postgres).

Expired entries are evicted lazily on read and by a periodic sweep task
started from the FastAPI lifespan. The store is constructed once per process
and injected; nothing else mutates entries directly.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from cachetools import TLRUCache
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rivue.models.cache_entry import CacheEntry
from rivue.services.errors import CacheUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3_600


class CacheStore(ABC):
    """Async key/value store with expiry. Writes are last-writer-wins."""

    backend = "abstract"

    def __init__(self) -> None:
        self._sweeper: Optional[asyncio.Task] = None

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value, or None when missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    @abstractmethod
    async def sweep(self) -> int:
        """Remove every expired entry; return how many were removed."""

    @abstractmethod
    async def size(self) -> int:
        ...

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    async def stats(self) -> dict[str, Any]:
        return {"type": self.backend, "size": await self.size()}

    # ── Periodic sweep ────────────────────────────────────────────────────────

    def start_sweeper(self, interval_seconds: float) -> None:
        """Start a background task calling sweep() every interval_seconds."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(interval_seconds))

    async def _sweep_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                removed = await self.sweep()
                if removed:
                    logger.debug("Cache sweep removed %d expired entries", removed)
            except CacheUnavailable as exc:
                logger.warning("Cache sweep failed: %s", exc)

    async def close(self) -> None:
        """Stop the sweeper task, if running."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None


# ── In-memory backend ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class _Slot:
    payload: str
    ttl: float


def _time_to_use(key: str, slot: _Slot, now: float) -> float:
    return now + slot.ttl


class MemoryCacheStore(CacheStore):
    """
    cachetools TLRUCache keyed by string. `timer` is injectable so tests can
    move time forward without sleeping.
    """

    backend = "memory"

    def __init__(
        self,
        maxsize: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__()
        self._cache: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_time_to_use, timer=timer)

    async def get(self, key: str) -> Optional[Any]:
        # expire() first so an entry read after its expiry is deleted, not just hidden
        self._cache.expire()
        slot = self._cache.get(key)
        if slot is None:
            return None
        return json.loads(slot.payload)

    async def set(self, key: str, value: Any, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._cache[key] = _Slot(payload=json.dumps(value), ttl=float(ttl_seconds))

    async def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    async def clear(self) -> None:
        self._cache.clear()

    async def sweep(self) -> int:
        expired = self._cache.expire()
        return len(expired) if expired else 0

    async def size(self) -> int:
        self._cache.expire()
        return len(self._cache)


# ── SQL backend ───────────────────────────────────────────────────────────────


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SqlCacheStore(CacheStore):
    """cache_entries table. Any SQLAlchemy error surfaces as CacheUnavailable."""

    backend = "sql"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        super().__init__()
        self._sessions = session_factory
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        try:
            async with self._sessions() as session:
                entry = await session.get(CacheEntry, key)
                if entry is None:
                    return None
                if _as_utc(entry.expires_at) <= self._clock():
                    await session.delete(entry)
                    await session.commit()
                    return None
                return entry.value
        except SQLAlchemyError as exc:
            raise CacheUnavailable(f"cache read failed for {key}: {exc}") from exc

    async def set(self, key: str, value: Any, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        expires_at = self._clock() + timedelta(seconds=ttl_seconds)
        try:
            async with self._sessions() as session:
                await session.merge(CacheEntry(key=key, value=value, expires_at=expires_at))
                await session.commit()
        except SQLAlchemyError as exc:
            raise CacheUnavailable(f"cache write failed for {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        await self._execute(delete(CacheEntry).where(CacheEntry.key == key), f"delete {key}")

    async def clear(self) -> None:
        await self._execute(delete(CacheEntry), "clear")

    async def sweep(self) -> int:
        return await self._execute(
            delete(CacheEntry).where(CacheEntry.expires_at <= self._clock()), "sweep"
        )

    async def size(self) -> int:
        try:
            async with self._sessions() as session:
                result = await session.execute(select(func.count()).select_from(CacheEntry))
                return int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise CacheUnavailable(f"cache size query failed: {exc}") from exc

    async def _execute(self, statement: Any, label: str) -> int:
        try:
            async with self._sessions() as session:
                result = await session.execute(statement)
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as exc:
            raise CacheUnavailable(f"cache {label} failed: {exc}") from exc
