import asyncio
import datetime as dt
from datetime import datetime, timezone

import httpx
import pytest
from conftest import (
    APP_ID,
    api_item,
    api_page,
    json_response,
    mock_http,
    no_sleep,
    rss_entry,
    rss_feed,
)

from rivue.schemas.fetch import DateRange
from rivue.schemas.review import ReviewSource
from rivue.services.adapters import AppleRssAdapter, AppStoreConnectAdapter
from rivue.services.adapters.base import parse_timestamp
from rivue.services.errors import AuthenticationFailure, UpstreamPermanentFailure, UpstreamTransientFailure

API_BASE = "https://api.appstoreconnect.apple.com/v1"


class StubSigner:
    def __init__(self):
        self.invalidated = 0

    def token(self) -> str:
        return "signed-token"

    def invalidate(self) -> None:
        self.invalidated += 1


def _api_adapter(http, fast_retry, signer=None, **kwargs):
    return AppStoreConnectAdapter(
        http, signer or StubSigner(), base_url=API_BASE, retry=fast_retry,
        page_delay=0, sleep=no_sleep, **kwargs,
    )


def _rss_adapter(http, fast_retry, country="us", **kwargs):
    return AppleRssAdapter(http, country, retry=fast_retry, page_delay=0, sleep=no_sleep, **kwargs)


# ── Timestamps ────────────────────────────────────────────────────────────────


def test_parse_timestamp_normalises_to_utc():
    parsed = parse_timestamp("2024-03-01T10:00:00-07:00")
    assert parsed == datetime(2024, 3, 1, 17, 0, tzinfo=timezone.utc)
    assert parse_timestamp("2024-03-01T10:00:00Z").tzinfo is not None
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp(None) is None


# ── App Store Connect ─────────────────────────────────────────────────────────


def test_api_adapter_follows_next_links_and_maps_fields(fast_retry):
    seen: list[httpx.Request] = []
    next_url = f"{API_BASE}/apps/{APP_ID}/customerReviews?cursor=abc"

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if "cursor=abc" in str(request.url):
            return json_response(api_page([api_item("a2", "2024-01-02T08:00:00Z", rating=3)]))
        return json_response(api_page(
            [api_item("a1", "2024-01-03T09:30:00-08:00", nickname="Jane", responded=True)],
            next_url=next_url,
        ))

    async def scenario():
        http = mock_http(handler)
        return await _api_adapter(http, fast_retry).fetch_all(APP_ID)

    reviews = asyncio.run(scenario())

    assert [r.id for r in reviews] == ["a1", "a2"]
    first = reviews[0]
    assert first.author == "Jane"
    assert first.date == dt.date(2024, 1, 3)
    assert first.developer_response_present is True
    assert first.source is ReviewSource.API
    assert first.country == "USA" and first.language == "en"
    assert seen[0].headers["Authorization"] == "Bearer signed-token"
    assert seen[0].url.params["filter[territory]"] == "USA"
    assert seen[0].url.params["limit"] == "200"
    assert seen[0].url.params["sort"] == "-createdDate"
    assert "filter[territory]" not in seen[1].url.params


def test_api_adapter_stops_at_since_boundary(fast_retry):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return json_response(api_page(
            [
                api_item("new", "2024-01-05T12:00:00Z"),
                api_item("edge", "2024-01-04T12:00:00Z"),
                api_item("old", "2024-01-03T12:00:00Z"),
            ],
            next_url=f"{API_BASE}/apps/{APP_ID}/customerReviews?cursor=more",
        ))

    since = datetime(2024, 1, 4, 12, 0, tzinfo=timezone.utc)

    async def scenario():
        return await _api_adapter(mock_http(handler), fast_retry).fetch_all(APP_ID, since=since)

    reviews = asyncio.run(scenario())
    assert [r.id for r in reviews] == ["new"]
    assert len(calls) == 1


def test_api_adapter_retries_transient_errors(fast_retry):
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(503)
        return json_response(api_page([api_item("a1", "2024-01-01T00:00:00Z")]))

    async def scenario():
        return await _api_adapter(mock_http(handler), fast_retry).fetch_all(APP_ID)

    assert [r.id for r in asyncio.run(scenario())] == ["a1"]
    assert len(attempts) == 3


def test_api_adapter_gives_up_after_three_attempts(fast_retry):
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(200, content=b"<html>rate limited</html>")

    async def scenario():
        return await _api_adapter(mock_http(handler), fast_retry).fetch_all(APP_ID)

    with pytest.raises(UpstreamTransientFailure):
        asyncio.run(scenario())
    assert len(attempts) == 3


def test_api_adapter_auth_failure_invalidates_token(fast_retry):
    signer = StubSigner()

    def handler(request: httpx.Request) -> httpx.Response:
        return json_response({"errors": [{"status": "401", "detail": "Token expired"}]}, 401)

    async def scenario():
        return await _api_adapter(mock_http(handler), fast_retry, signer=signer).fetch_all(APP_ID)

    with pytest.raises(AuthenticationFailure, match="Token expired"):
        asyncio.run(scenario())
    assert signer.invalidated == 1


def test_api_adapter_not_found_is_permanent(fast_retry):
    def handler(request: httpx.Request) -> httpx.Response:
        return json_response({"errors": [{"detail": "App not found"}]}, 404)

    async def scenario():
        return await _api_adapter(mock_http(handler), fast_retry).fetch_all(APP_ID)

    with pytest.raises(UpstreamPermanentFailure) as info:
        asyncio.run(scenario())
    assert info.value.status_code == 404


def test_api_adapter_respects_page_cap(fast_retry):
    def handler(request: httpx.Request) -> httpx.Response:
        n = len(str(request.url))
        return json_response(api_page(
            [api_item(f"id{n}", "2024-01-01T00:00:00Z")],
            next_url=f"{request.url}&p=1" if "?" in str(request.url) else f"{request.url}?p=1",
        ))

    async def scenario():
        return await _api_adapter(mock_http(handler), fast_retry, max_pages=4).fetch_all(APP_ID)

    assert len(asyncio.run(scenario())) == 4


def test_api_adapter_sleeps_between_pages_only(fast_retry):
    sleeps: list[float] = []

    async def recording_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if "page=3" in url:
            return json_response(api_page([api_item("a3", "2024-01-01T00:00:00Z")]))
        if "page=2" in url:
            return json_response(api_page(
                [api_item("a2", "2024-01-02T00:00:00Z")], next_url=f"{API_BASE}/next?page=3",
            ))
        return json_response(api_page(
            [api_item("a1", "2024-01-03T00:00:00Z")], next_url=f"{API_BASE}/next?page=2",
        ))

    async def scenario():
        adapter = AppStoreConnectAdapter(
            mock_http(handler), StubSigner(), base_url=API_BASE, retry=fast_retry,
            page_delay=0.1, sleep=recording_sleep,
        )
        return await adapter.fetch_all(APP_ID)

    reviews = asyncio.run(scenario())
    assert [r.id for r in reviews] == ["a1", "a2", "a3"]
    assert sleeps == [0.1, 0.1]


# ── RSS ───────────────────────────────────────────────────────────────────────


def test_rss_adapter_builds_feed_url_and_maps_fields(fast_retry):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return json_response(rss_feed([rss_entry("77", "Hans", "2024-02-01T10:00:00-07:00", 4)]))

    async def scenario():
        return await _rss_adapter(mock_http(handler), fast_retry, country="DE").fetch_all(APP_ID)

    reviews = asyncio.run(scenario())
    assert seen == [
        f"https://itunes.apple.com/de/rss/customerreviews/page=1/id={APP_ID}/sortby=mostrecent/json"
    ]
    (review,) = reviews
    assert review.author == "Hans"
    assert review.rating == 4
    assert review.country == "DE"
    assert review.language == "de"
    assert review.source is ReviewSource.RSS
    assert review.vote_count == 3 and review.vote_sum == 2
    assert review.app_version == "2.1"


def test_rss_adapter_pages_until_short_page(fast_retry):
    pages = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.path.split("page=")[1].split("/")[0])
        pages.append(page)
        count = 50 if page == 1 else 7
        return json_response(rss_feed([
            rss_entry(f"{page}-{i}", f"user{page}-{i}", "2024-01-01T00:00:00Z") for i in range(count)
        ]))

    async def scenario():
        return await _rss_adapter(mock_http(handler), fast_retry).fetch_all(APP_ID)

    assert len(asyncio.run(scenario())) == 57
    assert pages == [1, 2]


def test_rss_adapter_treats_later_404_as_end_of_feed(fast_retry):
    def handler(request: httpx.Request) -> httpx.Response:
        if "page=1/" in request.url.path:
            return json_response(rss_feed([
                rss_entry(str(i), f"u{i}", "2024-01-01T00:00:00Z") for i in range(50)
            ]))
        return httpx.Response(404)

    async def scenario():
        return await _rss_adapter(mock_http(handler), fast_retry).fetch_all(APP_ID)

    assert len(asyncio.run(scenario())) == 50


def test_rss_adapter_first_page_404_fails(fast_retry):
    async def scenario():
        http = mock_http(lambda request: httpx.Response(404))
        return await _rss_adapter(http, fast_retry).fetch_all(APP_ID)

    with pytest.raises(UpstreamPermanentFailure):
        asyncio.run(scenario())


def test_rss_adapter_applies_date_range(fast_retry):
    def handler(request: httpx.Request) -> httpx.Response:
        return json_response(rss_feed([
            rss_entry("1", "a", "2024-03-10T00:00:00Z"),
            rss_entry("2", "b", "2024-03-05T00:00:00Z"),
            rss_entry("3", "c", "2024-02-28T00:00:00Z"),
        ]))

    window = DateRange(start=dt.date(2024, 3, 1), end=dt.date(2024, 3, 7))

    async def scenario():
        return await _rss_adapter(mock_http(handler), fast_retry).fetch_all(APP_ID, date_range=window)

    assert [r.author for r in asyncio.run(scenario())] == ["b"]


def test_rss_adapter_accepts_single_entry_feed(fast_retry):
    def handler(request: httpx.Request) -> httpx.Response:
        return json_response({"feed": {"entry": rss_entry("9", "Solo", "2024-01-01T00:00:00Z")}})

    async def scenario():
        return await _rss_adapter(mock_http(handler), fast_retry).fetch_all(APP_ID)

    assert [r.author for r in asyncio.run(scenario())] == ["Solo"]
