"""
FastAPI dependencies and the error → HTTP mapping shared by the routers.

Services live on app.state (built once in the lifespan); tests swap them with
app.dependency_overrides.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from rivue.services.credentials import CredentialProvider
from rivue.services.errors import (
    AuthenticationFailure,
    CacheUnavailable,
    NoSourcesConfigured,
    ReviewSyncError,
    UpstreamPermanentFailure,
)
from rivue.services.review_service import ReviewService


def get_review_service(request: Request) -> ReviewService:
    """FastAPI dependency: the process-wide ReviewService."""
    return request.app.state.review_service


def get_credential_provider(request: Request) -> CredentialProvider:
    """FastAPI dependency: the process-wide CredentialProvider."""
    return request.app.state.credential_provider


def http_error(exc: ReviewSyncError) -> HTTPException:
    """Translate a core error into an HTTPException with an X-Error-Code header."""
    if isinstance(exc, NoSourcesConfigured):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, AuthenticationFailure):
        code = status.HTTP_401_UNAUTHORIZED
    elif isinstance(exc, UpstreamPermanentFailure):
        code = exc.status_code if exc.status_code and 400 <= exc.status_code < 500 else 404
    elif isinstance(exc, CacheUnavailable):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_502_BAD_GATEWAY
    return HTTPException(
        status_code=code,
        detail=str(exc),
        headers={"X-Error-Code": exc.kind.upper()},
    )
