"""
Rivue — FastAPI application entry point.
Lifespan: build cache store (create tables for the SQL backend) → HTTP client
→ review service; start the cache sweeper; tear everything down on shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rivue.config import settings
from rivue.database import AsyncSessionLocal, check_db_connectivity, engine
from rivue.models import Base
from rivue.routers import apps, cache, health, reviews
from rivue.services.cache_store import CacheStore, MemoryCacheStore, SqlCacheStore
from rivue.services.credentials import CredentialProvider
from rivue.services.http_client import ReviewHttpClient
from rivue.services.orchestrator import FetchOrchestrator
from rivue.services.review_service import ReviewService
from rivue.services.sync_tracker import SyncTracker

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def build_cache_store() -> CacheStore:
    """Memory store by default; SQL store (tables created idempotently) when configured."""
    if settings.cache_backend == "sql":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Cache tables created/verified.")
        if not await check_db_connectivity():
            logger.error("Database connectivity check FAILED at startup.")
        return SqlCacheStore(AsyncSessionLocal)
    return MemoryCacheStore(maxsize=settings.cache_max_entries)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan handler.
    1. Build the cache store and start its periodic sweep.
    2. Build the shared HTTP client (one semaphore for every upstream call).
    3. Wire the review service onto app.state.
    """
    logger.info("Starting Rivue (env=%s, cache=%s)", settings.app_env, settings.cache_backend)

    store = await build_cache_store()
    store.start_sweeper(settings.cache_sweep_interval_seconds)

    http = ReviewHttpClient(
        max_concurrency=settings.max_concurrent_requests,
        timeout=settings.http_timeout_seconds,
    )
    provider = CredentialProvider(settings)
    tracker = SyncTracker(
        store,
        territory=settings.default_territory,
        reviews_ttl_seconds=settings.reviews_ttl_seconds,
        metadata_ttl_seconds=settings.metadata_ttl_seconds,
    )
    app.state.credential_provider = provider
    app.state.review_service = ReviewService(
        FetchOrchestrator(http, settings), tracker, provider, settings
    )
    logger.info("Review service ready (%d configured app(s)).", len(provider.configured_apps()))

    yield

    logger.info("Shutting down Rivue.")
    await store.close()
    await http.aclose()
    await engine.dispose()


app = FastAPI(
    title="Rivue",
    description="App Store review aggregation with incremental sync across the API and RSS feeds.",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(reviews.router)
app.include_router(cache.router)
app.include_router(apps.router)


# ── Global exception handler ─────────────────────────────────────────────────

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a machine-readable error for any unhandled exception."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "RIVUE_UNAVAILABLE"},
    )
