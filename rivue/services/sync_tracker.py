"""
Incremental sync tracker — per-app "last sync" bookkeeping on top of the
cache store.

Keys:
  reviews:{app_id}:{territory}   merged review list          (TTL 2 h)
  meta:{app_id}                  SyncMetadata                 (TTL 24 h)

Per-app lifecycle: UNSYNCED → SYNCED → SYNCED …  Nothing is written for a
failed fetch, so the app simply stays in its previous state. A partial fetch
(some source failed or timed out) writes the merged list but keeps the
previous last_sync_timestamp.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from rivue.schemas.fetch import DateRange
from rivue.schemas.review import Review
from rivue.schemas.sync import SyncMetadata
from rivue.services.cache_store import CacheStore
from rivue.services.errors import CacheUnavailable

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncTracker:
    """Reads and writes cached review lists and their SyncMetadata."""

    def __init__(
        self,
        store: CacheStore,
        territory: str = "USA",
        reviews_ttl_seconds: int = 7_200,
        metadata_ttl_seconds: int = 86_400,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.territory = territory
        self.reviews_ttl_seconds = reviews_ttl_seconds
        self.metadata_ttl_seconds = metadata_ttl_seconds
        self._clock = clock

    # ── Keys ──────────────────────────────────────────────────────────────────

    def review_key(self, app_id: str) -> str:
        return f"reviews:{app_id}:{self.territory}"

    @staticmethod
    def meta_key(app_id: str) -> str:
        return f"meta:{app_id}"

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get_metadata(self, app_id: str) -> Optional[SyncMetadata]:
        raw = await self.store.get(self.meta_key(app_id))
        if raw is None:
            return None
        try:
            return SyncMetadata.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable sync metadata for %s: %s", app_id, exc)
            return None

    async def get_cached_reviews(self, app_id: str) -> list[Review]:
        raw = await self.store.get(self.review_key(app_id))
        if not raw:
            return []
        try:
            return [Review.model_validate(item) for item in raw]
        except ValidationError as exc:
            logger.warning("Discarding unreadable cached reviews for %s: %s", app_id, exc)
            return []

    async def has_cache(self, app_id: str) -> bool:
        return await self.store.has(self.review_key(app_id))

    async def should_fetch_since(
        self,
        app_id: str,
        force_refresh: bool = False,
        date_range: Optional[DateRange] = None,
    ) -> Optional[datetime]:
        """
        Lower bound for an incremental fetch: the previous sync time, or None
        ("fetch everything") when forced, when a date range is requested, when
        the app was never synced, or when the cache cannot be read.
        """
        if force_refresh or date_range is not None:
            return None
        try:
            metadata = await self.get_metadata(app_id)
        except CacheUnavailable as exc:
            logger.warning("Cache unavailable for %s — full fetch instead: %s", app_id, exc)
            return None
        return metadata.last_sync_timestamp if metadata else None

    # ── Writes ────────────────────────────────────────────────────────────────

    async def store_reviews(self, app_id: str, reviews: list[Review]) -> None:
        await self.store.set(
            self.review_key(app_id),
            [r.model_dump(mode="json", by_alias=True) for r in reviews],
            self.reviews_ttl_seconds,
        )

    async def record_sync(
        self,
        app_id: str,
        merged_reviews: list[Review],
        synced_at: Optional[datetime] = None,
    ) -> SyncMetadata:
        """
        Overwrite SyncMetadata from the merged list. An empty list is a valid
        sync. synced_at defaults to now.
        """
        dates = [r.date for r in merged_reviews]
        metadata = SyncMetadata(
            app_id=app_id,
            last_sync_timestamp=synced_at or self._clock(),
            review_count=len(merged_reviews),
            oldest_review_date=min(dates) if dates else None,
            newest_review_date=max(dates) if dates else None,
            territory=self.territory,
            cache_version=CACHE_VERSION,
        )
        await self.store.set(
            self.meta_key(app_id),
            metadata.model_dump(mode="json", by_alias=True),
            self.metadata_ttl_seconds,
        )
        return metadata

    async def save(
        self,
        app_id: str,
        merged_reviews: list[Review],
        advance: bool = True,
    ) -> Optional[SyncMetadata]:
        """
        Persist the review list, then the metadata. If the list write fails the
        metadata is left untouched, so it never claims a sync that has no data.

        advance=False (some source failed or timed out) keeps the previous
        last_sync_timestamp, so the next incremental fetch asks the failed
        source for everything it missed. An app that was never synced stays
        unsynced and returns None.
        """
        await self.store_reviews(app_id, merged_reviews)
        if advance:
            return await self.record_sync(app_id, merged_reviews)
        previous = await self.get_metadata(app_id)
        if previous is None:
            logger.info("Incomplete first sync for %s; metadata not written", app_id)
            return None
        return await self.record_sync(
            app_id, merged_reviews, synced_at=previous.last_sync_timestamp
        )

    async def clear(self, app_id: Optional[str] = None) -> None:
        """Forget one app (reviews + metadata), or everything when app_id is None."""
        if app_id is None:
            await self.store.clear()
            return
        await self.store.delete(self.review_key(app_id))
        await self.store.delete(self.meta_key(app_id))
