"""
HTTP page fetching for search result enrichment.

fetch_page() never raises on HTTP status codes: the caller decides how a
4xx/5xx is presented. Network errors propagate.
"""
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from .settings import DEFAULT_USER_AGENT

logger = structlog.get_logger()


def _http_client(timeout: float, user_agent: str) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": user_agent},
    )


@dataclass
class FetchedPage:
    """Result of a page fetch."""
    url: str
    status_code: int
    reason: str
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


async def fetch_page(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
    user_agent: str = DEFAULT_USER_AGENT,
) -> FetchedPage:
    """
    Fetch a URL and return its body and status.

    Args:
        url: URL to fetch
        client: Optional httpx client (creates one if not provided)
        timeout: Request timeout in seconds for a self-created client
        user_agent: User-Agent header for a self-created client
    """
    close_client = False
    if client is None:
        client = _http_client(timeout, user_agent)
        close_client = True

    try:
        response = await client.get(url)
        logger.debug("fetched", url=url, status=response.status_code)
        return FetchedPage(
            url=url,
            status_code=response.status_code,
            reason=response.reason_phrase,
            text=response.text,
        )

    finally:
        if close_client:
            await client.aclose()
