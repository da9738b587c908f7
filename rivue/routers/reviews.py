"""
Review endpoints — called by the dashboard frontend.

POST /reviews/{app_id}            fetch (incremental when possible) and return the merged list
GET  /reviews/{app_id}/sync       last sync metadata for the app
POST /reviews/{app_id}/metadata   date span and estimated count from the first pages
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from rivue.dependencies import get_review_service, http_error
from rivue.schemas.fetch import FetchOptions, FetchReviewsResponse, PreviewOptions, ReviewPreview
from rivue.schemas.sync import SyncMetadata
from rivue.services.errors import ReviewSyncError
from rivue.services.review_service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post("/{app_id}", response_model=FetchReviewsResponse, response_model_by_alias=True)
async def fetch_reviews(
    app_id: str,
    body: Optional[FetchOptions] = Body(default=None),
    service: ReviewService = Depends(get_review_service),
) -> FetchReviewsResponse:
    """
    Fetch reviews from the App Store Connect API (when credentials are
    available) and the RSS feeds of the requested countries.

    Per-source failures are reported in `sources`; the request itself only
    fails when no source is configured (400) or caller credentials are
    invalid (401).
    """
    try:
        return await service.fetch_reviews(app_id, body or FetchOptions())
    except ReviewSyncError as exc:
        logger.warning("Fetch for app %s rejected: %s", app_id, exc)
        raise http_error(exc) from exc


@router.get("/{app_id}/sync", response_model=SyncMetadata, response_model_by_alias=True)
async def get_sync_metadata(
    app_id: str,
    service: ReviewService = Depends(get_review_service),
) -> SyncMetadata:
    """Return the app's SyncMetadata, or 404 if it has never been synced."""
    try:
        metadata = await service.get_sync_metadata(app_id)
    except ReviewSyncError as exc:
        raise http_error(exc) from exc
    if metadata is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"App {app_id} has not been synced",
            headers={"X-Error-Code": "NOT_SYNCED"},
        )
    return metadata


@router.post("/{app_id}/metadata", response_model=ReviewPreview, response_model_by_alias=True)
async def preview_reviews(
    app_id: str,
    body: Optional[PreviewOptions] = Body(default=None),
    service: ReviewService = Depends(get_review_service),
) -> ReviewPreview:
    """
    Date span and estimated count of the app's reviews, from the first few
    pages of one source. Upstream errors map to 4xx/502.
    """
    try:
        return await service.get_review_preview(app_id, body or PreviewOptions())
    except ReviewSyncError as exc:
        logger.warning("Preview for app %s failed: %s", app_id, exc)
        raise http_error(exc) from exc
