"""Shared fixtures and payload builders for the test suite."""

from __future__ import annotations

import datetime as dt
import json
from typing import Any, Callable, Optional

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from rivue.config import Settings
from rivue.schemas.review import Review, ReviewSource
from rivue.services.credentials import AppleCredentials
from rivue.services.http_client import ReviewHttpClient
from rivue.services.retry import RetryPolicy, no_backoff

ISSUER_ID = "57246542-96fe-1a63-e053-0824d011072a"
KEY_ID = "2X9R4HXF34"
APP_ID = "123456789"


# ── Review builders ───────────────────────────────────────────────────────────


def make_review(
    id: str = "",
    author: str = "Someone",
    date: str = "2024-01-01",
    rating: int = 5,
    source: ReviewSource = ReviewSource.API,
    **extra: Any,
) -> Review:
    return Review(
        id=id,
        author=author,
        date=dt.date.fromisoformat(date),
        rating=rating,
        source=source,
        **extra,
    )


def rss_review(author: str, date: str, rating: int = 5, id: str = "") -> Review:
    return make_review(id=id, author=author, date=date, rating=rating, source=ReviewSource.RSS)


# ── Upstream payload builders ─────────────────────────────────────────────────


def api_item(
    id: str,
    created: str,
    rating: int = 5,
    nickname: str = "reviewer",
    responded: bool = False,
) -> dict:
    item = {
        "type": "customerReviews",
        "id": id,
        "attributes": {
            "rating": rating,
            "title": f"Title {id}",
            "body": f"Body {id}",
            "reviewerNickname": nickname,
            "createdDate": created,
            "territory": "USA",
        },
    }
    if responded:
        item["relationships"] = {"response": {"data": {"type": "customerReviewResponses", "id": "r1"}}}
    return item


def api_page(items: list[dict], next_url: Optional[str] = None) -> dict:
    return {"data": items, "links": {"next": next_url} if next_url else {}}


def rss_entry(
    id: str,
    author: str,
    updated: str,
    rating: int = 5,
    version: str = "2.1",
) -> dict:
    return {
        "id": {"label": id},
        "author": {"name": {"label": author}, "uri": {"label": "https://itunes.apple.com"}},
        "updated": {"label": updated},
        "im:rating": {"label": str(rating)},
        "im:version": {"label": version},
        "title": {"label": f"Title {id}"},
        "content": {"label": f"Content {id}", "attributes": {"type": "text"}},
        "im:voteCount": {"label": "3"},
        "im:voteSum": {"label": "2"},
    }


def rss_feed(entries: list[dict]) -> dict:
    # The first entry of a real feed is the app itself and carries no rating
    app_entry = {"id": {"label": "https://apps.apple.com/app/id123"}, "im:name": {"label": "App"}}
    return {"feed": {"entry": [app_entry, *entries]}}


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload).encode(),
                          headers={"Content-Type": "application/json"})


def mock_http(handler: Callable[[httpx.Request], httpx.Response], max_concurrency: int = 5) -> ReviewHttpClient:
    """ReviewHttpClient over httpx.MockTransport. Build it inside the running loop."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ReviewHttpClient(client=client, max_concurrency=max_concurrency)


async def no_sleep(_: float) -> None:
    return None


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_key(private_key_pem: str):
    key = serialization.load_pem_private_key(private_key_pem.encode(), password=None)
    return key.public_key()


@pytest.fixture
def credentials(private_key_pem: str) -> AppleCredentials:
    return AppleCredentials(issuer_id=ISSUER_ID, key_id=KEY_ID, private_key_pem=private_key_pem)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        apple_issuer_id=None,
        apple_key_id=None,
        apple_private_key_base64=None,
        apple_private_key_path=None,
        default_countries="us",
        page_delay_seconds=0,
        retry_backoff_seconds=0,
        fetch_timeout_seconds=5,
    )


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, backoff=no_backoff, sleep=no_sleep)
