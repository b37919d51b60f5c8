"""Shared HTTP retry helper for the Birdeye and Jupiter clients."""

import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger("solscalp.http")

# Retry settings
MAX_RETRIES = 3
RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
RETRYABLE_STATUS_CODES = {502, 503, 504, 429}


async def request_with_retry(
    service: str,
    method: str,
    url: str,
    headers: dict,
    *,
    base_delay: float = RETRY_BASE_DELAY,
    **kwargs,
) -> httpx.Response:
    """Execute an HTTP request with exponential-backoff retry.

    Retries on transient server errors (502, 503, 504) and rate-limits
    (429).  Non-retryable errors are raised immediately as
    ``httpx.HTTPStatusError``.  *service* only labels the log lines.
    """
    last_exc: Optional[Exception] = None

    for attempt in range(MAX_RETRIES):
        try:
            async with httpx.AsyncClient() as client:
                resp = await getattr(client, method)(
                    url,
                    headers=headers,
                    timeout=30.0,
                    **kwargs,
                )

            if resp.status_code in RETRYABLE_STATUS_CODES:
                delay = base_delay * (2 ** attempt)
                logger.warning(
                    "%s %s %s returned %d, retry %d/%d in %.1fs",
                    service, method.upper(), url, resp.status_code,
                    attempt + 1, MAX_RETRIES, delay,
                )
                await asyncio.sleep(delay)
                last_exc = httpx.HTTPStatusError(
                    f"Server error '{resp.status_code}'",
                    request=resp.request,
                    response=resp,
                )
                continue

            resp.raise_for_status()
            return resp

        except httpx.TransportError as exc:
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "%s %s %s transport error (%s), retry %d/%d in %.1fs",
                service, method.upper(), url, exc,
                attempt + 1, MAX_RETRIES, delay,
            )
            last_exc = exc
            await asyncio.sleep(delay)

    # All retries exhausted
    raise last_exc  # type: ignore[misc]
