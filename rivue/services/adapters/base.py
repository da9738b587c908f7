"""
Base adapter — shared pagination loop for every upstream review source.

Subclasses implement a single-attempt page request; the base class wraps it
in the injected RetryPolicy, paces consecutive pages, applies the date window
and decides when to stop:

  * the upstream reports no next cursor;
  * a page reaches past the lower bound of the window (older than `since` or
    before `date_range.start`) — reviews arrive newest-first, so later pages
    can only be older;
  * max_pages is hit (guards against upstreams that are not strictly sorted).
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from rivue.schemas.fetch import DateRange
from rivue.schemas.review import Review
from rivue.services.errors import UpstreamPermanentFailure
from rivue.services.http_client import ReviewHttpClient
from rivue.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

CursorT = TypeVar("CursorT")


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """Parse an upstream ISO-8601 timestamp into an aware UTC datetime."""
    if not isinstance(raw, str) or not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class Entry:
    """A parsed review plus the full-precision timestamp it was created at."""

    created_at: datetime
    review: Review


@dataclass
class Page(Generic[CursorT]):
    entries: list[Entry] = field(default_factory=list)
    next_cursor: Optional[CursorT] = None

    @property
    def reviews(self) -> list[Review]:
        return [e.review for e in self.entries]


@dataclass
class Sample:
    """The first few pages of a source, unfiltered."""

    reviews: list[Review] = field(default_factory=list)
    pages: int = 0
    more_available: bool = False


@dataclass
class FetchWindow:
    """
    Which upstream entries a fetch wants.
    `since` is exclusive and full-precision; date_range is whole days, inclusive.
    """

    since: Optional[datetime] = None
    date_range: Optional[DateRange] = None

    def accepts(self, entry: Entry) -> bool:
        if self.since is not None and entry.created_at <= self.since:
            return False
        if self.date_range is not None and not self.date_range.contains(entry.review.date):
            return False
        return True

    def is_past_lower_bound(self, entry: Entry) -> bool:
        if self.since is not None and entry.created_at <= self.since:
            return True
        start = self.date_range.start if self.date_range else None
        return start is not None and entry.review.date < start


class ReviewSourceAdapter(ABC, Generic[CursorT]):
    """One upstream source. `name` is "api" or an RSS country code."""

    # A permanent error after the first page means "feed exhausted" for sources
    # that 404 past their last page instead of returning an empty one.
    permanent_error_ends_feed = False

    def __init__(
        self,
        http: ReviewHttpClient,
        retry: Optional[RetryPolicy] = None,
        page_delay: float = 0.1,
        max_pages: int = 50,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.http = http
        self.retry = retry or RetryPolicy()
        self.page_delay = page_delay
        self.max_pages = max_pages
        self._sleep = sleep

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def first_cursor(self, app_id: str) -> CursorT:
        ...

    @abstractmethod
    async def request_page(self, app_id: str, cursor: CursorT) -> Page[CursorT]:
        """Single attempt at one page. Raises the error taxonomy on failure."""

    async def fetch_page(self, app_id: str, cursor: Optional[CursorT] = None) -> Page[CursorT]:
        """Fetch one page (the first when cursor is None) under the retry policy."""
        current = cursor if cursor is not None else self.first_cursor(app_id)
        return await self.retry.run(
            lambda: self.request_page(app_id, current),
            label=f"[{self.name}] page {current}",
        )

    async def fetch_all(
        self,
        app_id: str,
        since: Optional[datetime] = None,
        date_range: Optional[DateRange] = None,
        sink: Optional[list[Review]] = None,
    ) -> list[Review]:
        """
        Paginate until the source is exhausted or the window's lower bound is
        reached. Accepted reviews are appended to `sink` page by page, so a
        caller that cancels this coroutine still sees what was collected.
        """
        window = FetchWindow(since=since, date_range=date_range)
        collected: list[Review] = sink if sink is not None else []
        cursor: Optional[CursorT] = self.first_cursor(app_id)
        pages = 0

        while cursor is not None and pages < self.max_pages:
            if pages and self.page_delay > 0:
                await self._sleep(self.page_delay)
            try:
                page = await self.fetch_page(app_id, cursor)
            except UpstreamPermanentFailure as exc:
                if pages and self.permanent_error_ends_feed:
                    logger.info("[%s] page %s unavailable (%s) — end of feed", self.name, cursor, exc)
                    break
                raise
            pages += 1

            kept = [e.review for e in page.entries if window.accepts(e)]
            collected.extend(kept)
            logger.debug(
                "[%s] page %d: %d entries, %d kept (total %d)",
                self.name, pages, len(page.entries), len(kept), len(collected),
            )

            if any(window.is_past_lower_bound(e) for e in page.entries):
                logger.info("[%s] reached date boundary after %d pages", self.name, pages)
                break
            cursor = page.next_cursor
        else:
            if cursor is not None:
                logger.warning("[%s] stopped at page cap (%d pages)", self.name, self.max_pages)

        return collected

    async def sample(self, app_id: str, max_pages: int = 5) -> Sample:
        """
        Read up to max_pages pages with no window applied, paced like
        fetch_all. Used to size a source without fetching all of it.
        """
        sample = Sample()
        cursor: Optional[CursorT] = self.first_cursor(app_id)
        while cursor is not None and sample.pages < max_pages:
            if sample.pages and self.page_delay > 0:
                await self._sleep(self.page_delay)
            try:
                page = await self.fetch_page(app_id, cursor)
            except UpstreamPermanentFailure:
                if sample.pages and self.permanent_error_ends_feed:
                    cursor = None
                    break
                raise
            sample.pages += 1
            sample.reviews.extend(page.reviews)
            cursor = page.next_cursor
        sample.more_available = cursor is not None
        return sample
