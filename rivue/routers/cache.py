"""Cache management endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import Response

from rivue.dependencies import get_review_service, http_error
from rivue.schemas.sync import CacheStatus
from rivue.services.errors import ReviewSyncError
from rivue.services.review_service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cache", tags=["cache"])


@router.get("/status/{app_id}", response_model=CacheStatus, response_model_by_alias=True)
async def cache_status(
    app_id: str,
    service: ReviewService = Depends(get_review_service),
) -> CacheStatus:
    """Whether the app has cached reviews, its metadata and store stats."""
    try:
        return await service.get_cache_status(app_id)
    except ReviewSyncError as exc:
        raise http_error(exc) from exc


@router.delete("/{app_id}", status_code=status.HTTP_204_NO_CONTENT)
async def clear_app_cache(
    app_id: str,
    service: ReviewService = Depends(get_review_service),
) -> Response:
    """Forget the app's cached reviews and sync metadata."""
    try:
        await service.clear_cache(app_id)
    except ReviewSyncError as exc:
        raise http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_all_cache(
    service: ReviewService = Depends(get_review_service),
) -> Response:
    """Forget every cached entry."""
    try:
        await service.clear_cache()
    except ReviewSyncError as exc:
        raise http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
