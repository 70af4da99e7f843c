"""
Perplexity Client
=================

Domain-filtered web search through Perplexity's `sonar` models.

Version: 0.1.0
"""

import time
from typing import Any

import httpx

from shared.config import settings
from shared.llm.errors import LLMConfigurationError, LLMTransportError, error_for_status
from shared.llm.provider import LLMMessage, WebSearchResponse
from shared.llm.retry import NO_RETRY, RetryPolicy
from shared.logging import get_logger


logger = get_logger(__name__)


def citation_urls(payload: dict[str, Any]) -> list[str]:
    """Citations arrive either as bare URLs or as objects with a `url` key."""
    urls: list[str] = []
    for item in payload.get("citations") or []:
        url = item if isinstance(item, str) else (item or {}).get("url")
        if url and url not in urls:
            urls.append(url)
    return urls


class PerplexityClient:
    """Search-grounded chat completion restricted to a set of domains."""

    name = "perplexity"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        retry_policy: RetryPolicy = NO_RETRY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or settings.llm.perplexity.api_key.get_secret_value()
        self.model = model or settings.llm.perplexity.model
        self._retry_policy = retry_policy
        self._transport = transport

        if not self._api_key:
            raise LLMConfigurationError("PERPLEXITY_API_KEY is not configured", provider=self.name)

    async def search(
        self,
        system_prompt: str,
        user_prompt: str,
        domains: list[str] | None = None,
    ) -> WebSearchResponse:
        """
        Run a search-grounded completion.

        Args:
            system_prompt: Instructions for the research model
            user_prompt: What to research
            domains: Restrict search to these domains (search_domain_filter)
        """
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [
                LLMMessage(role="system", content=system_prompt).to_dict(),
                LLMMessage(role="user", content=user_prompt).to_dict(),
            ],
            "search_recency_filter": settings.llm.perplexity.recency_filter,
            "temperature": settings.llm.temperature,
            "return_citations": True,
            "return_related_questions": False,
        }
        if domains:
            body["search_domain_filter"] = domains

        start_time = time.perf_counter()
        payload = await self._retry_policy.call(self._post, body)
        latency_ms = (time.perf_counter() - start_time) * 1000

        choices = payload.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        citations = citation_urls(payload)

        logger.info(
            "perplexity_search_completed",
            model=self.model,
            citations=len(citations),
            latency_ms=round(latency_ms, 2),
        )
        return WebSearchResponse(
            content=content,
            citations=citations,
            model=self.model,
            provider=self.name,
            latency_ms=latency_ms,
        )

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=settings.llm.perplexity.base_url,
            timeout=httpx.Timeout(settings.llm.timeout_seconds),
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(
                    "/chat/completions",
                    json=body,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
            except httpx.HTTPError as e:
                logger.error("perplexity_transport_error", error=str(e))
                raise LLMTransportError(f"Perplexity request failed: {e}", provider=self.name) from e

        if response.status_code >= 400:
            logger.error("perplexity_api_error", status_code=response.status_code, body=response.text)
            raise error_for_status(self.name, response.status_code, response.text)

        return response.json()
