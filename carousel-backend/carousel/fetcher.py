"""Download background images over HTTP(S).

Redirects are followed by hand rather than by httpx so that the redirect
budget, the per-hop timeout and the content-type check apply to every hop.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Optional

import httpx

from .errors import (
    EmptyResponseError,
    FetchTimeoutError,
    HttpStatusError,
    InvalidContentTypeError,
    NetworkError,
    RedirectLoopError,
)

logger = logging.getLogger(__name__)

FETCH_TIMEOUT: float = float(os.getenv("FETCH_TIMEOUT", "10"))
MAX_REDIRECTS: int = int(os.getenv("MAX_REDIRECTS", "10"))

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

USER_AGENT = "carousel-backend/0.1 (+image fetcher)"


def build_client() -> httpx.AsyncClient:
    """Client for image downloads.

    httpx's own timeouts are disabled; each hop is bounded by ``asyncio.wait_for``
    with ``FETCH_TIMEOUT`` instead.
    """
    return httpx.AsyncClient(timeout=None)


@dataclass(frozen=True)
class FetchedImage:
    content: bytes
    content_type: Optional[str]
    url: str


class _Redirect(Exception):
    def __init__(self, location: str) -> None:
        self.location = location


async def _fetch_once(client: httpx.AsyncClient, url: str) -> FetchedImage:
    """Issue one GET. Raises ``_Redirect`` when the server points elsewhere."""
    async with client.stream(
        "GET", url, headers={"User-Agent": USER_AGENT}, follow_redirects=False
    ) as response:
        if response.status_code in REDIRECT_STATUSES:
            location = response.headers.get("location")
            if location:
                raise _Redirect(location)
        if response.status_code != 200:
            raise HttpStatusError(response.status_code, response.reason_phrase)

        content_type = response.headers.get("content-type")
        if content_type and not content_type.strip().lower().startswith("image/"):
            # Leave the body unread; closing the stream drops the connection.
            raise InvalidContentTypeError(content_type)

        chunks = []
        async for chunk in response.aiter_bytes():
            chunks.append(chunk)
        content = b"".join(chunks)
        if not content:
            raise EmptyResponseError(url)
        return FetchedImage(content=content, content_type=content_type, url=str(response.url))


async def _follow(
    client: httpx.AsyncClient, url: str, max_redirects: int, timeout: float
) -> FetchedImage:
    current = httpx.URL(url)
    redirects = 0
    while True:
        try:
            return await asyncio.wait_for(_fetch_once(client, str(current)), timeout)
        except _Redirect as redirect:
            location = redirect.location
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise FetchTimeoutError(f"Image download timeout after {timeout:g}s: {current}") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc

        redirects += 1
        if redirects > max_redirects:
            raise RedirectLoopError(max_redirects)
        try:
            current = current.join(location)
        except httpx.InvalidURL as exc:
            raise NetworkError(f"Invalid redirect location {location!r}: {exc}") from exc
        logger.debug("Redirect %d -> %s", redirects, current)


async def fetch_image(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    max_redirects: int = MAX_REDIRECTS,
    timeout: float = FETCH_TIMEOUT,
) -> FetchedImage:
    """Download ``url`` and return its bytes.

    Args:
        url: Absolute http(s) URL of the image.
        client: Shared client for the batch. A private one is opened and
            closed when omitted.
        max_redirects: Number of redirects that may be followed before
            ``RedirectLoopError`` is raised.
        timeout: Seconds allowed for each hop, body included.

    Returns:
        The image bytes together with the declared content type and the
        final URL after redirects.

    Raises:
        FetchError: One of its subclasses describing why the download failed.
    """
    try:
        httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as exc:
        raise NetworkError(f"Invalid URL {url!r}: {exc}") from exc

    if client is not None:
        return await _follow(client, url, max_redirects, timeout)
    async with build_client() as own_client:
        return await _follow(own_client, url, max_redirects, timeout)
