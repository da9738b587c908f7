"""
Error taxonomy for the review sync core.

The core never encodes HTTP semantics; the routers translate these into
status codes (AuthenticationFailure → 401, UpstreamPermanentFailure → 4xx,
NoSourcesConfigured → 400).
"""

from __future__ import annotations

from typing import Optional


class ReviewSyncError(Exception):
    """Base class. `source` names the upstream ("api" or an RSS country) when known."""

    kind = "error"

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.source = source


class AuthenticationFailure(ReviewSyncError):
    """Credentials missing, invalid or rejected upstream. Never retried."""

    kind = "authentication"


class CredentialError(AuthenticationFailure):
    """Credential material is malformed (bad PEM, missing key id, …)."""

    kind = "credentials"


class UpstreamTransientFailure(ReviewSyncError):
    """Timeout, connection error, 429/5xx or malformed page. Retried."""

    kind = "transient"


class UpstreamPermanentFailure(ReviewSyncError):
    """Non-auth 4xx (e.g. app not found). Not retried."""

    kind = "permanent"

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, source)
        self.status_code = status_code


class CacheUnavailable(ReviewSyncError):
    """Cache store failed. Soft: the fetch proceeds without incremental sync."""

    kind = "cache"


class NoSourcesConfigured(ReviewSyncError):
    """Neither API credentials nor RSS countries were available."""

    kind = "no_sources"
