"""
POST helpers for the remote sheets GraphQL endpoint.

GraphQL queries go through post_with_retry (safe to repeat). Mutations go through
post_no_retry: a config write or an order commit is sent at most once per call.
"""
import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 2
RETRY_BACKOFF_BASE = 1.0  # seconds
RETRY_BACKOFF_MAX = 10.0
RETRY_STATUSES = frozenset({502, 503, 504})


def backoff_delay(attempt: int) -> float:
    """Seconds to wait before retry number attempt (1-based)."""
    return min(RETRY_BACKOFF_BASE * (2 ** (attempt - 1)), RETRY_BACKOFF_MAX)


async def post_with_retry(
    url: str,
    *,
    json: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_RETRIES,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """
    POST a read-only GraphQL query. Gateway errors and transport failures are
    retried up to max_retries times; the last response or error is returned/raised.
    """
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        attempt = 0
        while True:
            try:
                resp = await client.post(url, json=json or {}, headers=headers or {})
            except httpx.TransportError as e:
                if attempt >= max_retries:
                    raise
                attempt += 1
                logger.warning("Sheets query attempt %s failed: %s", attempt, e)
            else:
                if resp.status_code not in RETRY_STATUSES or attempt >= max_retries:
                    return resp
                attempt += 1
                logger.warning("Sheets query attempt %s got HTTP %s", attempt, resp.status_code)
            await asyncio.sleep(backoff_delay(attempt))


async def post_no_retry(
    url: str,
    *,
    json: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """POST a GraphQL mutation once."""
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        return await client.post(url, json=json or {}, headers=headers or {})
