"""
Review service — the facade the routers call.

fetch_reviews(app_id, options):
  1. Resolve sources: API credentials (request body, else server-side) and
     the RSS countries (request, else DEFAULT_COUNTRIES).
  2. With use_cache (the default), no force_refresh and no date range, a
     cached list is returned as is (from_cache=True) without calling upstream.
  3. Ask the SyncTracker for the incremental lower bound.
  4. Run every source through the FetchOrchestrator.
  5. Incremental path → merge fresh reviews into the cache.
     Full / forced path → deduplicate the fresh reviews alone.
  6. Date-range requests are filtered to the range and never cached.
  7. Write the cache only if at least one source succeeded. The sync time
     only advances when every source completed.

get_review_preview(app_id, options) reads up to five pages of one source to
report the date span and an estimated count.

From fetch_reviews only NoSourcesConfigured (and invalid caller credentials)
reach the caller as errors. Per-source failures are reported in the
response's `sources`.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Optional, Union

from rivue.config import Settings, get_settings
from rivue.schemas.fetch import (
    FetchOptions,
    FetchReviewsResponse,
    PreviewOptions,
    ReviewPreview,
    SourcesReport,
)
from rivue.schemas.review import Review
from rivue.schemas.sync import CacheStatus, SyncMetadata
from rivue.services.credentials import (
    AppleCredentials,
    CredentialProvider,
    from_request,
    validate_credentials,
)
from rivue.services.errors import CacheUnavailable, CredentialError, NoSourcesConfigured
from rivue.services.merge import dedupe, filter_date_range, merge
from rivue.services.orchestrator import FetchOrchestrator, normalise_countries
from rivue.services.sync_tracker import SyncTracker

logger = logging.getLogger(__name__)


class ReviewService:
    """One instance per process, built in the FastAPI lifespan."""

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        tracker: SyncTracker,
        credentials: CredentialProvider,
        settings: Optional[Settings] = None,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self.orchestrator = orchestrator
        self.tracker = tracker
        self.credentials = credentials
        self.settings = settings or get_settings()
        self._today = today

    # ── Fetch ─────────────────────────────────────────────────────────────────

    async def fetch_reviews(
        self,
        app_id: str,
        options: Optional[FetchOptions] = None,
    ) -> FetchReviewsResponse:
        options = options or FetchOptions()
        countries = normalise_countries(
            options.countries if options.countries is not None
            else self.settings.default_countries_list
        )
        creds = self._resolve_credentials(app_id, options)
        if creds is None and not countries:
            raise NoSourcesConfigured(
                f"No API credentials and no RSS countries configured for app {app_id}"
            )

        date_range = options.effective_date_range(self._today())
        if options.use_cache and not options.force_refresh and date_range is None:
            hit = await self._from_cache(app_id)
            if hit is not None:
                return hit

        since = await self.tracker.should_fetch_since(
            app_id, force_refresh=options.force_refresh, date_range=date_range
        )
        cached = await self._cached_for_incremental(app_id) if since is not None else []
        if since is not None and not cached:
            # Metadata outlives the review list; without the list there is nothing to merge into
            logger.info("No cached reviews for app %s — full fetch", app_id)
            since = None
        incremental = since is not None

        outcome = await self.orchestrator.fetch_all(
            app_id,
            countries,
            since=since,
            date_range=date_range,
            timeout=options.timeout_seconds or self.settings.fetch_timeout_seconds,
            credentials=creds,
        )

        reviews = merge(outcome.reviews, cached) if incremental else dedupe(outcome.reviews)
        if date_range is not None:
            reviews = filter_date_range(reviews, date_range)
        new_review_count = len(reviews) - len(cached)

        metadata = await self._persist(app_id, reviews, outcome.per_source, date_range is None)

        logger.info(
            "App %s: %d reviews (%d new, incremental=%s)",
            app_id, len(reviews), new_review_count, incremental,
        )
        return FetchReviewsResponse(
            reviews=reviews,
            sources=outcome.per_source,
            total_count=len(reviews),
            incremental_update=incremental,
            new_review_count=new_review_count,
            metadata=metadata,
            date_range_filter=date_range,
        )

    # ── Preview ───────────────────────────────────────────────────────────────

    async def get_review_preview(
        self,
        app_id: str,
        options: Optional[PreviewOptions] = None,
    ) -> ReviewPreview:
        """
        Size up an app's reviews from the first few pages of one source: the
        API when credentials resolve, else the first RSS country. Nothing is
        cached. Upstream errors propagate to the caller.
        """
        options = options or PreviewOptions()
        creds = self._resolve_credentials(app_id, options)
        if creds is not None:
            adapter = self.orchestrator.api_adapter(creds)
        else:
            countries = normalise_countries(
                options.countries if options.countries is not None
                else self.settings.default_countries_list
            )
            if not countries:
                raise NoSourcesConfigured(
                    f"No API credentials and no RSS countries configured for app {app_id}"
                )
            adapter = self.orchestrator.rss_adapter(countries[0])

        sample = await adapter.sample(app_id, max_pages=options.max_pages)
        dates = [r.date for r in sample.reviews]
        logger.info(
            "Preview for app %s from %s: %d reviews over %d page(s), more=%s",
            app_id, adapter.name, len(dates), sample.pages, sample.more_available,
        )
        return ReviewPreview(
            app_id=app_id,
            source=adapter.name,
            has_reviews=bool(dates),
            newest_review_date=max(dates) if dates else None,
            oldest_review_date=min(dates) if dates else None,
            estimated_count=len(dates),
            more_available=sample.more_available,
            pages_read=sample.pages,
        )

    # ── Cache management ──────────────────────────────────────────────────────

    async def get_sync_metadata(self, app_id: str) -> Optional[SyncMetadata]:
        return await self.tracker.get_metadata(app_id)

    async def clear_cache(self, app_id: Optional[str] = None) -> None:
        await self.tracker.clear(app_id)
        logger.info("Cleared cache for %s", app_id or "all apps")

    async def get_cache_status(self, app_id: str) -> CacheStatus:
        return CacheStatus(
            app_id=app_id,
            has_cache=await self.tracker.has_cache(app_id),
            metadata=await self.tracker.get_metadata(app_id),
            stats=await self.tracker.store.stats(),
        )

    # ── Internal ──────────────────────────────────────────────────────────────

    def _resolve_credentials(
        self, app_id: str, options: Union[FetchOptions, PreviewOptions]
    ) -> Optional[AppleCredentials]:
        if options.credentials is not None:
            creds = from_request(options.credentials)
            problems = validate_credentials(creds)
            if problems:
                raise CredentialError("; ".join(problems), source="api")
            return creds
        if options.use_server_credentials:
            return self.credentials.get(app_id)
        return None

    async def _cached_for_incremental(self, app_id: str) -> list[Review]:
        try:
            return await self.tracker.get_cached_reviews(app_id)
        except CacheUnavailable as exc:
            logger.warning("Cached reviews unreadable for app %s: %s", app_id, exc)
            return []

    async def _from_cache(self, app_id: str) -> Optional[FetchReviewsResponse]:
        """The cached list as a response, or None when there is nothing cached."""
        cached = await self._cached_for_incremental(app_id)
        if not cached:
            return None
        logger.info("Serving %d cached reviews for app %s", len(cached), app_id)
        return FetchReviewsResponse(
            reviews=cached,
            total_count=len(cached),
            metadata=await self._soft_metadata(app_id),
            from_cache=True,
        )

    async def _persist(
        self,
        app_id: str,
        reviews: list[Review],
        report: SourcesReport,
        cacheable: bool,
    ) -> Optional[SyncMetadata]:
        """
        Write the cache after a fetch; return the metadata to report. The sync
        time only advances when every source completed.
        """
        if not report.any_success:
            logger.warning("Every source failed for app %s — cache left untouched", app_id)
            return await self._soft_metadata(app_id)
        if not cacheable:
            return await self._soft_metadata(app_id)
        complete = report.all_success
        if not complete:
            logger.warning("Incomplete fetch for app %s; last sync time kept", app_id)
        try:
            return await self.tracker.save(app_id, reviews, advance=complete)
        except CacheUnavailable as exc:
            logger.warning("Could not cache reviews for app %s: %s", app_id, exc)
            return None

    async def _soft_metadata(self, app_id: str) -> Optional[SyncMetadata]:
        try:
            return await self.tracker.get_metadata(app_id)
        except CacheUnavailable:
            return None
