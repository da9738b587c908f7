"""Pydantic schemas for sync metadata and cache status."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SyncMetadata(BaseModel):
    """
    Per-app record of the last successful sync.
    Overwritten (never appended) on every successful fetch.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    app_id: str
    last_sync_timestamp: dt.datetime
    review_count: int = 0
    oldest_review_date: Optional[dt.date] = None
    newest_review_date: Optional[dt.date] = None
    territory: str = "USA"
    cache_version: str = "1.0"


class CacheStatus(BaseModel):
    """Response for GET /cache/status/{app_id}."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    app_id: str
    has_cache: bool
    metadata: Optional[SyncMetadata] = None
    stats: dict[str, Any] = Field(default_factory=dict)
