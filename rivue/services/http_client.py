"""
HTTP client — one shared httpx.AsyncClient for every upstream call.

Responsibilities:
  * cap concurrent outbound requests (asyncio.Semaphore, default 5)
  * translate transport errors and status codes into the error taxonomy:
      401/403            → AuthenticationFailure
      408/429/5xx        → UpstreamTransientFailure
      other 4xx          → UpstreamPermanentFailure
      timeout / network  → UpstreamTransientFailure
      non-JSON body      → UpstreamTransientFailure (malformed page)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

import httpx

from rivue.services.errors import (
    AuthenticationFailure,
    UpstreamPermanentFailure,
    UpstreamTransientFailure,
)

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; ReviewDashboard/1.0)"
_TRANSIENT_STATUSES = {408, 425, 429}


def _error_detail(response: httpx.Response) -> str:
    """Pull App Store Connect's errors[0].detail when present."""
    try:
        payload = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return str(errors[0].get("detail") or errors[0].get("title") or response.status_code)
    return response.reason_phrase or f"HTTP {response.status_code}"


class ReviewHttpClient:
    """Thin async GET-JSON client. Owns its httpx client unless one is injected."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_concurrency: int = 5,
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )
        self._timeout = timeout
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def get_json(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
        source: Optional[str] = None,
    ) -> Any:
        """GET url and return the decoded JSON body, or raise a typed error."""
        async with self._semaphore:
            try:
                response = await self._client.get(
                    url,
                    headers=dict(headers or {}),
                    params=dict(params) if params else None,
                    timeout=timeout or self._timeout,
                )
            except httpx.TimeoutException as exc:
                raise UpstreamTransientFailure(f"Timed out fetching {url}", source) from exc
            except httpx.TransportError as exc:
                raise UpstreamTransientFailure(f"Network error fetching {url}: {exc}", source) from exc

        status = response.status_code
        if status in (401, 403):
            raise AuthenticationFailure(_error_detail(response), source)
        if status >= 500 or status in _TRANSIENT_STATUSES:
            raise UpstreamTransientFailure(f"HTTP {status}: {_error_detail(response)}", source)
        if status >= 400:
            raise UpstreamPermanentFailure(_error_detail(response), source, status_code=status)

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Non-JSON body from %s (status=%d)", url, status)
            raise UpstreamTransientFailure(f"Malformed JSON from {url}", source) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
