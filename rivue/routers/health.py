"""Health check endpoints — used by load balancers and uptime monitoring."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rivue.config import settings
from rivue.database import check_db_connectivity
from rivue.dependencies import get_review_service
from rivue.services.errors import CacheUnavailable
from rivue.services.review_service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    """Liveness probe — returns 200 if the process is running."""
    return {"status": "ok", "version": "1.0.0"}


@router.get("/ready")
async def ready(service: ReviewService = Depends(get_review_service)) -> JSONResponse:
    """
    Readiness probe — checks the cache store (and the database behind it when
    CACHE_BACKEND=sql).
    Returns 200 with {"cache": "ok", ...} when fully ready, or 503 with the
    failing component marked "error".
    """
    status: dict[str, str] = {}
    all_ok = True

    # Check database
    if settings.cache_backend == "sql":
        db_ok = await check_db_connectivity()
        status["db"] = "ok" if db_ok else "error"
        all_ok = all_ok and db_ok

    # Check cache store with a trivial call
    try:
        await service.tracker.store.size()
        status["cache"] = "ok"
    except CacheUnavailable as exc:
        logger.warning("Cache store check failed: %s", exc)
        status["cache"] = "error"
        all_ok = False

    http_status = 200 if all_ok else 503
    return JSONResponse(content=status, status_code=http_status)
