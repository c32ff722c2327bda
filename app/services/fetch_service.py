# app/services/fetch_service.py
import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class PageFetchError(Exception):
    """The target page could not be retrieved."""


@dataclass(frozen=True)
class FetchedPage:
    html: str
    fetch_time_ms: int


async def fetch_page(
    url: str,
    user_agent: str,
    max_chars: int,
    client: Optional[httpx.AsyncClient] = None,
) -> FetchedPage:
    """
    Downloads the target page once, without retries.

    Args:
        url: The http(s) URL to fetch.
        user_agent: User-Agent header sent with the request.
        max_chars: The markup is cut to this many characters.
        client: Optional shared HTTP client; a short-lived one is created otherwise.

    Returns:
        The (possibly truncated) markup and how long the request took.

    Raises:
        PageFetchError: On network errors or a non-success status code.
    """
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(follow_redirects=True)
    try:
        start = time.perf_counter()
        response = await client.get(url, headers={"User-Agent": user_agent}, timeout=30.0)
        fetch_time_ms = int((time.perf_counter() - start) * 1000)
        if not response.is_success:
            raise PageFetchError(f"Failed to fetch page: {response.status_code} {response.reason_phrase}")
        html = response.text
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise PageFetchError(str(e) or e.__class__.__name__) from e
    finally:
        if owns_client:
            await client.aclose()

    if len(html) > max_chars:
        logger.debug("Truncating %s from %d to %d characters", url, len(html), max_chars)
        html = html[:max_chars]

    return FetchedPage(html=html, fetch_time_ms=fetch_time_ms)
