"""
Firecrawl Fetcher
=================

Fetches rendered page markdown through the Firecrawl scrape API.

API Documentation: https://docs.firecrawl.dev/api-reference/endpoint/scrape

Version: 0.1.0
"""

from typing import Any

import httpx

from services.regulatory_monitor.scrapers.base import (
    ContentFetcher,
    FetcherConfigurationError,
    FetchResult,
)
from shared.config import settings
from shared.logging import get_logger


logger = get_logger(__name__)


class FirecrawlFetcher(ContentFetcher):
    """
    Firecrawl-backed fetcher.

    Requests main-content markdown with a fixed render wait. No retries:
    a failed fetch is reported and the source is retried on the next run.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        wait_for_ms: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or settings.firecrawl.api_key.get_secret_value()
        self._base_url = base_url or settings.firecrawl.base_url
        self._wait_for_ms = wait_for_ms if wait_for_ms is not None else settings.firecrawl.wait_for_ms
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        if not self._api_key:
            raise FetcherConfigurationError("FIRECRAWL_API_KEY is not configured")

    @property
    def name(self) -> str:
        return "firecrawl"

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(settings.firecrawl.timeout_seconds, connect=10.0),
                headers={"Authorization": f"Bearer {self._api_key}"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> FetchResult:
        """Scrape `url` and return its markdown."""
        body = {
            "url": url,
            "formats": ["markdown"],
            "onlyMainContent": True,
            "waitFor": self._wait_for_ms,
        }

        try:
            response = await self._get_client().post("/scrape", json=body)
        except httpx.HTTPError as e:
            logger.error("firecrawl_request_failed", url=url, error=str(e))
            return FetchResult.failed(url, str(e) or type(e).__name__)

        try:
            payload = response.json()
        except ValueError:
            payload = None
        data: dict[str, Any] = payload if isinstance(payload, dict) else {}

        if response.status_code >= 400:
            error = data.get("error")
            if not isinstance(error, str) or not error:
                error = f"HTTP {response.status_code}"
            logger.error("firecrawl_error", url=url, status_code=response.status_code, error=error)
            return FetchResult.failed(url, error)

        inner = data.get("data")
        markdown = (inner.get("markdown") if isinstance(inner, dict) else None) or data.get("markdown")
        if not isinstance(markdown, str):
            markdown = None
        if not markdown:
            logger.warning("firecrawl_empty_content", url=url)
            return FetchResult.failed(url, "No content returned from Firecrawl")

        result = FetchResult(url=url, success=True, content=markdown)
        logger.info(
            "firecrawl_scraped",
            url=url,
            content_length=len(markdown),
            content_hash=result.content_hash[:16],
        )
        return result
