"""
Apple RSS adapter — public customer-review feed for one country.

  https://itunes.apple.com/{country}/rss/customerreviews/page={n}/id={app}/sortby=mostrecent/json

Cursor: 1-based page number. The feed never reports a total, so a page with
fewer than PAGE_SIZE reviews (or none) is the last one, and Apple stops
serving after page 10. Feed ids are not stable across pages or countries;
deduplication treats RSS reviews by composite key.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from rivue.schemas.review import Review, ReviewSource
from rivue.services.adapters.base import Entry, Page, ReviewSourceAdapter, parse_timestamp
from rivue.services.errors import UpstreamTransientFailure
from rivue.services.http_client import ReviewHttpClient
from rivue.utils.territories import language_for_country

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
MAX_FEED_PAGES = 10


def _label(node: Any) -> Optional[str]:
    """RSS-JSON wraps every scalar as {"label": "..."}."""
    if isinstance(node, dict):
        value = node.get("label")
        return value if isinstance(value, str) else None
    return None


def _int_label(node: Any) -> Optional[int]:
    try:
        return int(_label(node) or "")
    except ValueError:
        return None


class AppleRssAdapter(ReviewSourceAdapter[int]):
    """One country's feed. Reports itself by its country code."""

    permanent_error_ends_feed = True

    def __init__(
        self,
        http: ReviewHttpClient,
        country: str,
        base_url: str = "https://itunes.apple.com",
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("max_pages", MAX_FEED_PAGES)
        super().__init__(http, **kwargs)
        self.country = country.lower()
        self.base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return self.country

    def first_cursor(self, app_id: str) -> int:
        return 1

    def page_url(self, app_id: str, page: int) -> str:
        return (
            f"{self.base_url}/{self.country}/rss/customerreviews/"
            f"page={page}/id={app_id}/sortby=mostrecent/json"
        )

    async def request_page(self, app_id: str, cursor: int) -> Page[int]:
        payload = await self.http.get_json(
            self.page_url(app_id, cursor),
            headers={"Accept": "application/json"},
            source=self.name,
        )
        if not isinstance(payload, dict) or not isinstance(payload.get("feed"), dict):
            raise UpstreamTransientFailure("Malformed RSS feed payload", self.name)

        raw_entries = payload["feed"].get("entry") or []
        if isinstance(raw_entries, dict):  # a single-review feed is not wrapped in a list
            raw_entries = [raw_entries]

        # The app's own metadata entry has no rating; only count reviews
        review_entries = [e for e in raw_entries if isinstance(e, dict) and "im:rating" in e]
        entries = [entry for entry in map(self._to_entry, review_entries) if entry is not None]

        has_more = len(review_entries) >= PAGE_SIZE
        return Page(entries=entries, next_cursor=cursor + 1 if has_more else None)

    def _to_entry(self, raw: dict[str, Any]) -> Optional[Entry]:
        created_at = parse_timestamp(_label(raw.get("updated")))
        if created_at is None:
            logger.debug("[%s] skipping RSS entry without a date", self.country)
            return None

        author = _label((raw.get("author") or {}).get("name")) or "Anonymous"
        try:
            review = Review(
                id=_label(raw.get("id")) or "",
                rating=_int_label(raw.get("im:rating")),
                title=_label(raw.get("title")) or "",
                body=_label(raw.get("content")) or "",
                author=author,
                date=created_at.date(),
                app_version=_label(raw.get("im:version")) or "",
                country=self.country.upper(),
                language=language_for_country(self.country),
                developer_response_present=False,  # the feed omits developer replies
                source=ReviewSource.RSS,
                vote_count=_int_label(raw.get("im:voteCount")),
                vote_sum=_int_label(raw.get("im:voteSum")),
            )
        except ValidationError as exc:
            logger.debug("[%s] skipping malformed RSS entry: %s", self.country, exc)
            return None
        return Entry(created_at=created_at, review=review)
