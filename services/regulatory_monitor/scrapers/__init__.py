"""
Regulatory Content Fetchers
===========================

Fetchers that retrieve the rendered text of government regulatory pages.

Fetchers:
- FirecrawlFetcher: Firecrawl scrape API (markdown, main content only)
"""

from services.regulatory_monitor.scrapers.base import (
    ContentFetcher,
    FetcherConfigurationError,
    FetchResult,
    compute_content_hash,
)
from services.regulatory_monitor.scrapers.firecrawl import FirecrawlFetcher

__all__ = [
    "ContentFetcher",
    "FetcherConfigurationError",
    "FetchResult",
    "FirecrawlFetcher",
    "compute_content_hash",
]
