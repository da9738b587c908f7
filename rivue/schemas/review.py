"""Pydantic schema for the canonical Review record."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ReviewSource(str, Enum):
    """Upstream a review was fetched from. Diagnostics only — never identity."""

    API = "API"
    RSS = "RSS"


class Review(BaseModel):
    """
    A single App Store review, normalised from either upstream.
    Serialised with camelCase keys (appVersion, developerResponsePresent, …)
    so the dashboard frontend can consume it unchanged.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = ""                       # upstream id; RSS ids are not stable
    rating: int = Field(..., ge=1, le=5)
    title: str = ""
    body: str = ""
    author: str = "Anonymous"
    date: dt.date                      # day granularity
    app_version: str = ""
    platform: str = "iOS"
    country: str = ""
    language: str = "en"
    developer_response_present: bool = False
    source: ReviewSource

    # Supplemental upstream-specific fields
    os_version: Optional[str] = None   # API only
    vote_count: Optional[int] = None   # RSS only
    vote_sum: Optional[int] = None     # RSS only

    @property
    def has_reliable_id(self) -> bool:
        """Only non-empty App Store Connect ids are stable across fetches."""
        return bool(self.id) and self.source is ReviewSource.API
