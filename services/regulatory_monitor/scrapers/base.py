"""
Base Fetcher Module
===================

Abstract content fetcher and the fetch result shared by all fetchers.

Version: 0.1.0
"""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime


class FetcherConfigurationError(Exception):
    """Fetcher cannot run (missing API key, bad endpoint)."""


def compute_content_hash(content: str) -> str:
    """SHA-256 hex digest of page text, used as an opaque change token."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass
class FetchResult:
    """Outcome of fetching one regulatory page. Failures never raise."""

    url: str
    success: bool
    content: str | None = None
    error: str | None = None
    content_hash: str = ""
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Compute derived fields."""
        if not self.content_hash and self.content:
            self.content_hash = compute_content_hash(self.content)

    @classmethod
    def failed(cls, url: str, error: str) -> "FetchResult":
        return cls(url=url, success=False, error=error)


class ContentFetcher(ABC):
    """
    Retrieves the rendered main text of a page.

    Implementations must report every failure through `FetchResult` so a
    batch can move on to the next source.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Fetcher name for logs."""
        ...

    @abstractmethod
    async def fetch(self, url: str) -> FetchResult:
        """Fetch a page."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        return None
