"""
App Store Connect adapter — GET /v1/apps/{id}/customerReviews.

Cursor: the opaque `links.next` URL returned with each page; the first page
is requested with explicit query params, later pages use the next link as-is.
Every request carries a bearer token from AppleTokenSigner, which refreshes
it shortly before the 20-minute expiry.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from rivue.schemas.review import Review, ReviewSource
from rivue.services.adapters.base import Entry, Page, ReviewSourceAdapter, parse_timestamp
from rivue.services.errors import AuthenticationFailure, UpstreamTransientFailure
from rivue.services.http_client import ReviewHttpClient
from rivue.services.token_signer import AppleTokenSigner
from rivue.utils.territories import language_for_territory

logger = logging.getLogger(__name__)

PAGE_SIZE = 200  # maximum the API allows


class AppStoreConnectAdapter(ReviewSourceAdapter[str]):
    """Authenticated API source. Reports itself as "api"."""

    def __init__(
        self,
        http: ReviewHttpClient,
        signer: AppleTokenSigner,
        base_url: str = "https://api.appstoreconnect.apple.com/v1",
        territory: str = "USA",
        **kwargs: Any,
    ) -> None:
        super().__init__(http, **kwargs)
        self.signer = signer
        self.base_url = base_url.rstrip("/")
        self.territory = territory

    @property
    def name(self) -> str:
        return "api"

    def first_cursor(self, app_id: str) -> str:
        return f"{self.base_url}/apps/{app_id}/customerReviews"

    async def request_page(self, app_id: str, cursor: str) -> Page[str]:
        params: dict[str, Any] = {}
        if cursor == self.first_cursor(app_id):
            params = {
                "filter[territory]": self.territory,
                "limit": PAGE_SIZE,
                "sort": "-createdDate",
                "include": "response",
            }
        headers = {
            "Authorization": f"Bearer {self.signer.token()}",
            "Accept": "application/json",
        }
        try:
            payload = await self.http.get_json(cursor, headers=headers, params=params, source=self.name)
        except AuthenticationFailure:
            self.signer.invalidate()
            raise
        return self._parse(payload)

    def _parse(self, payload: Any) -> Page[str]:
        if not isinstance(payload, dict) or not isinstance(payload.get("data", []), list):
            raise UpstreamTransientFailure("Malformed customerReviews page", self.name)

        entries: list[Entry] = []
        for item in payload.get("data") or []:
            entry = self._to_entry(item)
            if entry is not None:
                entries.append(entry)

        links = payload.get("links") or {}
        next_link = links.get("next") if isinstance(links, dict) else None
        return Page(entries=entries, next_cursor=next_link or None)

    def _to_entry(self, item: Any) -> Entry | None:
        if not isinstance(item, dict):
            return None
        attrs = item.get("attributes") or {}
        created_at = parse_timestamp(attrs.get("createdDate"))
        if created_at is None:
            logger.debug("[api] skipping review %s without createdDate", item.get("id"))
            return None

        response = ((item.get("relationships") or {}).get("response") or {}).get("data")
        territory = attrs.get("territory") or self.territory
        try:
            review = Review(
                id=str(item.get("id") or ""),
                rating=attrs.get("rating"),
                title=attrs.get("title") or "",
                body=attrs.get("body") or "",
                author=attrs.get("reviewerNickname") or "Anonymous",
                date=created_at.date(),
                app_version=attrs.get("appVersionString") or "",
                country=territory,
                language=language_for_territory(territory),
                developer_response_present=bool(response),
                source=ReviewSource.API,
                os_version=attrs.get("osVersion") or None,
            )
        except ValidationError as exc:
            logger.debug("[api] skipping malformed review %s: %s", item.get("id"), exc)
            return None
        return Entry(created_at=created_at, review=review)
