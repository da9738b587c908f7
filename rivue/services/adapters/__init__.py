"""Upstream review source adapters."""

from rivue.services.adapters.app_store_connect import AppStoreConnectAdapter
from rivue.services.adapters.apple_rss import AppleRssAdapter
from rivue.services.adapters.base import Entry, FetchWindow, Page, ReviewSourceAdapter, Sample

__all__ = [
    "AppStoreConnectAdapter", "AppleRssAdapter",
    "Entry", "FetchWindow", "Page", "ReviewSourceAdapter", "Sample",
]
