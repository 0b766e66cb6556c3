"""HTTP helpers shared by source connectors.

Every request goes through ``fetch_with_retry``: network errors, timeouts and
non-2xx responses are retried with exponential backoff
(``backoff_s * 2**attempt``) and surface as ``FetchError`` once the retry
budget is spent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urljoin

import httpx

from .errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

REDIRECT_STATUSES = (301, 302, 303, 307, 308)

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    backoff_s: float = 2.0

    def delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (0-based)."""
        return self.backoff_s * (2 ** attempt)


def build_client(timeout_s: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Async client with browser-like headers and a per-request timeout."""
    return httpx.AsyncClient(
        timeout=timeout_s,
        headers=DEFAULT_HEADERS,
        follow_redirects=True,
        transport=transport,
    )


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    policy: RetryPolicy = RetryPolicy(),
    sleep: Sleep = asyncio.sleep,
) -> httpx.Response:
    """GET ``url`` and return the 2xx response, retrying transient failures.

    Raises:
        FetchError: All ``policy.max_retries + 1`` attempts failed.
    """
    attempts = policy.max_retries + 1
    last_error: Optional[Exception] = None
    for attempt in range(attempts):
        try:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            return resp
        except (httpx.HTTPStatusError, httpx.TransportError) as exc:
            last_error = exc
            if attempt + 1 >= attempts:
                break
            delay = policy.delay(attempt)
            logger.warning(
                f"Request to {url} failed ({exc}); retry {attempt + 1}/{policy.max_retries} in {delay:.1f}s"
            )
            await sleep(delay)
    logger.error(f"Giving up on {url} after {attempts} attempt(s): {last_error}")
    raise FetchError(url, attempts, last_error)


async def resolve_redirect(client: httpx.AsyncClient, url: str) -> Optional[str]:
    """Return the ``Location`` a tracking URL redirects to, without following it.

    None when the response is not a redirect or the request fails.
    """
    try:
        resp = await client.get(url, follow_redirects=False)
    except httpx.HTTPError as exc:
        logger.warning(f"Could not resolve redirect for {url}: {exc}")
        return None
    if resp.status_code not in REDIRECT_STATUSES:
        logger.warning(f"Expected a redirect from {url}, got HTTP {resp.status_code}")
        return None
    location = resp.headers.get("location")
    return urljoin(url, location) if location else None
