"""Pydantic schemas package."""

from rivue.schemas.review import Review, ReviewSource
from rivue.schemas.sync import CacheStatus, SyncMetadata
from rivue.schemas.fetch import (
    AppleCredentialsIn,
    ConfiguredApp,
    Country,
    DateRange,
    FetchOptions,
    FetchReviewsResponse,
    PreviewOptions,
    ReviewPreview,
    SourceResult,
    SourcesReport,
)

__all__ = [
    "Review", "ReviewSource",
    "SyncMetadata", "CacheStatus",
    "AppleCredentialsIn", "ConfiguredApp", "Country", "DateRange",
    "FetchOptions", "FetchReviewsResponse", "PreviewOptions", "ReviewPreview",
    "SourceResult", "SourcesReport",
]
