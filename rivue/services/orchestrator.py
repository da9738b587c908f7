"""
Multi-source fetch orchestrator — runs every upstream for one app concurrently.

Sources for a fetch:
  api        AppStoreConnectAdapter, only when credentials were resolved
  <country>  one AppleRssAdapter per requested country

Each source runs as its own asyncio task over the shared ReviewHttpClient, so
the client's semaphore caps outbound requests across all of them. A failing
source never affects the others; it is reported in the SourcesReport instead.

On overall timeout the pending tasks are cancelled. Reviews a cancelled source
had already collected are kept (adapters append to their sink page by page)
and the source is reported with timed_out=True.

Output order: API reviews first, then RSS countries in request order. No
sorting or deduplication happens here.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from rivue.config import Settings, get_settings
from rivue.schemas.fetch import DateRange, SourceResult, SourcesReport
from rivue.schemas.review import Review
from rivue.services.adapters import AppleRssAdapter, AppStoreConnectAdapter, ReviewSourceAdapter
from rivue.services.credentials import AppleCredentials
from rivue.services.errors import ReviewSyncError
from rivue.services.http_client import ReviewHttpClient
from rivue.services.retry import RetryPolicy, linear_backoff
from rivue.services.token_signer import AppleTokenSigner

logger = logging.getLogger(__name__)

API_SOURCE = "api"


@dataclass
class FetchOutcome:
    """Concatenated reviews of every source plus the per-source report."""

    reviews: list[Review] = field(default_factory=list)
    per_source: SourcesReport = field(default_factory=SourcesReport)

    @property
    def any_success(self) -> bool:
        return self.per_source.any_success

    @property
    def all_success(self) -> bool:
        return self.per_source.all_success


def normalise_countries(countries: Optional[list[str]]) -> list[str]:
    """Lowercase, strip blanks and drop repeats while keeping request order."""
    seen: list[str] = []
    for code in countries or []:
        code = code.strip().lower()
        if code and code not in seen:
            seen.append(code)
    return seen


def _success(source: str, reviews: list[Review]) -> SourceResult:
    return SourceResult(
        source=source,
        success=True,
        count=len(reviews),
        most_recent=max((r.date for r in reviews), default=None),
    )


class FetchOrchestrator:
    """
    Builds adapters from Settings and runs them. `retry` and `sleep` are
    injectable so tests can run without real backoff or page delays.
    """

    def __init__(
        self,
        http: ReviewHttpClient,
        settings: Optional[Settings] = None,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.http = http
        self.settings = settings or get_settings()
        self.retry = retry or RetryPolicy(
            max_attempts=self.settings.api_max_attempts,
            backoff=linear_backoff(self.settings.retry_backoff_seconds),
            sleep=sleep,
        )
        self._sleep = sleep

    # ── Adapter construction ──────────────────────────────────────────────────

    def api_adapter(self, credentials: AppleCredentials) -> AppStoreConnectAdapter:
        s = self.settings
        return AppStoreConnectAdapter(
            self.http,
            AppleTokenSigner(credentials),
            base_url=s.apple_api_base,
            territory=s.default_territory,
            retry=self.retry,
            page_delay=s.page_delay_seconds,
            max_pages=s.api_max_pages,
            sleep=self._sleep,
        )

    def rss_adapter(self, country: str) -> AppleRssAdapter:
        s = self.settings
        return AppleRssAdapter(
            self.http,
            country,
            base_url=s.rss_base_url,
            retry=self.retry,
            page_delay=s.page_delay_seconds,
            max_pages=s.rss_max_pages,
            sleep=self._sleep,
        )

    # ── Fetch ─────────────────────────────────────────────────────────────────

    async def fetch_all(
        self,
        app_id: str,
        countries: Optional[list[str]],
        since: Optional[datetime] = None,
        date_range: Optional[DateRange] = None,
        timeout: Optional[float] = None,
        credentials: Optional[AppleCredentials] = None,
    ) -> FetchOutcome:
        """
        Fetch from every configured source. Never raises for a source failure;
        returns an empty outcome when there is nothing to fetch from.
        """
        adapters: list[ReviewSourceAdapter] = []
        if credentials is not None:
            adapters.append(self.api_adapter(credentials))
        adapters.extend(self.rss_adapter(c) for c in normalise_countries(countries))

        if not adapters:
            logger.warning("No sources to fetch for app %s", app_id)
            return FetchOutcome()

        logger.info(
            "Fetching app %s from %s (since=%s, range=%s)",
            app_id, ", ".join(a.name for a in adapters), since, date_range,
        )

        sinks: dict[str, list[Review]] = {a.name: [] for a in adapters}
        tasks = {
            a.name: asyncio.create_task(
                a.fetch_all(app_id, since=since, date_range=date_range, sink=sinks[a.name]),
                name=f"fetch:{app_id}:{a.name}",
            )
            for a in adapters
        }

        try:
            _, pending = await asyncio.wait(tasks.values(), timeout=timeout)
        except asyncio.CancelledError:
            # The caller went away; do not leave the sources running
            for task in tasks.values():
                task.cancel()
            raise
        if pending:
            logger.warning(
                "Fetch for app %s timed out after %ss; cancelling %d source(s)",
                app_id, timeout, len(pending),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        outcome = FetchOutcome()
        succeeded = 0
        for name, task in tasks.items():
            result, kept = self._collect(name, task, sinks[name], timed_out=task in pending)
            outcome.reviews.extend(kept)
            succeeded += result.success
            if name == API_SOURCE and credentials is not None:
                outcome.per_source.api = result
            else:
                outcome.per_source.rss[name] = result

        logger.info(
            "Fetched %d reviews for app %s (%d/%d sources ok)",
            len(outcome.reviews), app_id, succeeded, len(tasks),
        )
        return outcome

    @staticmethod
    def _collect(
        name: str,
        task: asyncio.Task,
        partial: list[Review],
        timed_out: bool,
    ) -> tuple[SourceResult, list[Review]]:
        """Turn a finished (or cancelled) task into its SourceResult and reviews."""
        if timed_out or task.cancelled():
            return (
                SourceResult(
                    source=name,
                    success=False,
                    count=len(partial),
                    error="Timed out before the source finished",
                    error_kind="timeout",
                    timed_out=True,
                    most_recent=max((r.date for r in partial), default=None),
                ),
                list(partial),
            )

        exc = task.exception()
        if exc is None:
            reviews = task.result()
            return _success(name, reviews), reviews

        if isinstance(exc, ReviewSyncError):
            logger.warning("[%s] source failed (%s): %s", name, exc.kind, exc)
            kind = exc.kind
        else:
            logger.error("[%s] source crashed", name, exc_info=exc)
            kind = "unexpected"
        return SourceResult(source=name, success=False, error=str(exc), error_kind=kind), []
