"""
Retry policy for upstream page requests.

Adapters receive a RetryPolicy instead of looping on their own, so the
attempt bound and the backoff curve can be swapped (tests inject
`no_backoff` to run without real sleeps).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from rivue.services.errors import UpstreamTransientFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

BackoffFn = Callable[[int], float]


def linear_backoff(step_seconds: float = 1.0) -> BackoffFn:
    """Delay grows linearly with the attempt number: step, 2×step, 3×step, …"""
    return lambda attempt: step_seconds * attempt


def no_backoff(attempt: int) -> float:
    return 0.0


@dataclass
class RetryPolicy:
    """
    Retries only UpstreamTransientFailure. Authentication and permanent
    failures propagate on the first attempt.
    """

    max_attempts: int = 3
    backoff: BackoffFn = field(default_factory=linear_backoff)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def run(self, call: Callable[[], Awaitable[T]], label: str = "request") -> T:
        """Await call() up to max_attempts times; re-raise the last transient error."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except UpstreamTransientFailure as exc:
                if attempt >= self.max_attempts:
                    logger.warning(
                        "%s failed after %d attempts: %s", label, attempt, exc
                    )
                    raise
                delay = self.backoff(attempt)
                logger.info(
                    "%s attempt %d/%d failed (%s) — retrying in %.2fs",
                    label, attempt, self.max_attempts, exc, delay,
                )
                if delay > 0:
                    await self.sleep(delay)
