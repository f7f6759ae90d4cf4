"""HTTP utilities providing bounded retry for transient transport faults."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)


class RetryConfig:
    def __init__(self, *, attempts: int = 1, backoff_seconds: float = 0.5) -> None:
        self.attempts = max(1, attempts)
        self.backoff_seconds = backoff_seconds


async def request_with_retry(
    func: Callable[..., Awaitable[httpx.Response]],
    *args,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    """
    Await ``func`` and return its response, retrying transport faults only.

    HTTP error statuses are returned to the caller untouched: an OAuth token
    endpoint answering 400 will answer 400 again, and authorization codes are
    single use.
    """
    config = retry_config or RetryConfig()
    attempt = 0

    while True:
        try:
            return await func(*args, **kwargs)
        except httpx.TransportError as exc:
            attempt += 1
            if attempt >= config.attempts:
                raise
            logger.warning(
                "Transient HTTP failure (attempt %d/%d): %s",
                attempt,
                config.attempts,
                exc,
            )
            await asyncio.sleep(config.backoff_seconds * attempt)


__all__ = ["RetryConfig", "request_with_retry"]
