"""Pydantic schemas for the review fetch request/response cycle."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from rivue.schemas.review import Review
from rivue.schemas.sync import SyncMetadata

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DateRange(BaseModel):
    """Inclusive calendar-day window. Either bound may be open."""

    model_config = _CAMEL

    start: Optional[dt.date] = None
    end: Optional[dt.date] = None

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start and self.end and self.start > self.end:
            raise ValueError("start must not be after end")
        return self

    def contains(self, day: dt.date) -> bool:
        """True if day falls inside the window (both bounds inclusive)."""
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


class AppleCredentialsIn(BaseModel):
    """Caller-supplied App Store Connect credentials (instead of server ones)."""

    model_config = _CAMEL

    issuer_id: str
    key_id: Optional[str] = None   # may be recovered from an AuthKey_<ID>.p8 marker
    private_key: str


class FetchOptions(BaseModel):
    """Body for POST /reviews/{app_id}."""

    model_config = _CAMEL

    countries: Optional[list[str]] = None
    force_refresh: bool = False
    use_cache: bool = True   # serve a cached list without calling upstream
    date_range: Optional[DateRange] = None
    days_to_fetch: Optional[int] = Field(default=None, ge=1, le=3650)
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    use_server_credentials: bool = True
    credentials: Optional[AppleCredentialsIn] = None

    def effective_date_range(self, today: Optional[dt.date] = None) -> Optional[DateRange]:
        """
        Explicit date_range wins; otherwise days_to_fetch becomes a window
        ending today. Returns None when neither is set.
        """
        if self.date_range is not None:
            return self.date_range
        if self.days_to_fetch:
            end = today or dt.date.today()
            return DateRange(start=end - dt.timedelta(days=self.days_to_fetch), end=end)
        return None


class SourceResult(BaseModel):
    """
    Outcome of one upstream source (the API, or one RSS country).
    success=False carries the failure reason; timed_out marks sources cut off
    by the overall fetch timeout.
    """

    model_config = _CAMEL

    source: str
    success: bool
    count: int = 0
    error: Optional[str] = None
    error_kind: Optional[str] = None
    timed_out: bool = False
    most_recent: Optional[dt.date] = None


class SourcesReport(BaseModel):
    """Per-source diagnostics returned next to the merged reviews."""

    api: Optional[SourceResult] = None
    rss: dict[str, SourceResult] = Field(default_factory=dict)

    def results(self) -> list[SourceResult]:
        return ([self.api] if self.api else []) + list(self.rss.values())

    @property
    def any_success(self) -> bool:
        return any(r.success for r in self.results())

    @property
    def all_success(self) -> bool:
        """Every source finished without error or timeout."""
        results = self.results()
        return bool(results) and all(r.success for r in results)


class FetchReviewsResponse(BaseModel):
    """Response for POST /reviews/{app_id}."""

    model_config = _CAMEL

    reviews: list[Review] = Field(default_factory=list)
    sources: SourcesReport = Field(default_factory=SourcesReport)
    total_count: int = 0
    incremental_update: bool = False
    new_review_count: int = 0
    metadata: Optional[SyncMetadata] = None
    date_range_filter: Optional[DateRange] = None
    from_cache: bool = False


class PreviewOptions(BaseModel):
    """Body for POST /reviews/{app_id}/metadata."""

    model_config = _CAMEL

    countries: Optional[list[str]] = None
    max_pages: int = Field(default=5, ge=1, le=5)
    use_server_credentials: bool = True
    credentials: Optional[AppleCredentialsIn] = None


class ReviewPreview(BaseModel):
    """
    Date span and size of an app's reviews, read from the first few pages of
    one source. estimated_count is exact only when more_available is False.
    """

    model_config = _CAMEL

    app_id: str
    source: str
    has_reviews: bool = False
    newest_review_date: Optional[dt.date] = None
    oldest_review_date: Optional[dt.date] = None
    estimated_count: int = 0
    more_available: bool = False
    pages_read: int = 0


class ConfiguredApp(BaseModel):
    """An app with server-side App Store Connect credentials."""

    model_config = _CAMEL

    id: str
    name: str
    has_credentials: bool


class Country(BaseModel):
    """An RSS storefront the dashboard can fetch from."""

    code: str
    name: str
