"""
HTTP access for pages and images.

One `httpx.AsyncClient` is shared by every task of a run. The cookie jar is
handed to the client as a raw `http.cookiejar.CookieJar`, so the client reads
and updates that very object (httpx copies `Cookies` instances but wraps a
bare jar in place).
"""

from __future__ import annotations

import logging
from http.cookiejar import CookieJar
from typing import TYPE_CHECKING, Optional

import httpx

from .retry import RetryConfig, with_retry_async

if TYPE_CHECKING:
    from ..settings.models import ScraperSettings

logger = logging.getLogger(__name__)


def build_client(
    settings: ScraperSettings,
    *,
    cookies: Optional[CookieJar] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create the run's HTTP client.

    Args:
        settings: Timeout and User-Agent come from here.
        cookies: Jar attached to every exchange (updated in place).
        transport: Optional transport override (tests use httpx.MockTransport).
    """
    return httpx.AsyncClient(
        headers={
            "User-Agent": settings.user_agent,
            "Accept": "*/*",
        },
        cookies=cookies if cookies is not None else CookieJar(),
        timeout=httpx.Timeout(settings.timeout_s),
        follow_redirects=True,
        transport=transport,
    )


async def _get_checked(client: httpx.AsyncClient, url: str) -> httpx.Response:
    response = await client.get(url)
    response.raise_for_status()
    return response


async def fetch_page(
    client: httpx.AsyncClient,
    url: str,
    *,
    retry: Optional[RetryConfig] = None,
) -> str:
    """GET a page and return its decoded body. Non-2xx raises httpx.HTTPStatusError."""
    response = await with_retry_async(lambda: _get_checked(client, url), config=retry)
    logger.debug("Fetched page %s (%d bytes)", url, len(response.content))
    return response.text


async def fetch_bytes(
    client: httpx.AsyncClient,
    url: str,
    *,
    retry: Optional[RetryConfig] = None,
) -> bytes:
    """GET a resource and return the full body."""
    response = await with_retry_async(lambda: _get_checked(client, url), config=retry)
    return response.content
