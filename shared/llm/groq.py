"""
Groq Compound Client
====================

Client for Groq's search-enabled `compound` models. The model runs its own
web searches; the URLs it visited come back as `web_search` tool results.

Version: 0.1.0
"""

import time
from typing import Any

import httpx

from shared.config import settings
from shared.llm.errors import LLMConfigurationError, LLMTransportError, error_for_status
from shared.llm.provider import LLMMessage, WebSearchResponse
from shared.llm.retry import RetryPolicy
from shared.logging import get_logger


logger = get_logger(__name__)


def default_groq_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.llm.groq.max_retries,
        delay_seconds=settings.llm.groq.retry_delay_seconds,
    )


def tool_result_urls(payload: dict[str, Any]) -> list[str]:
    """Collect URLs from `web_search` tool results in a compound reply."""
    urls: list[str] = []
    for result in payload.get("tool_results") or []:
        if result.get("name") != "web_search" or not isinstance(result.get("result"), list):
            continue
        for item in result["result"]:
            url = item.get("url") if isinstance(item, dict) else None
            if url and url not in urls:
                urls.append(url)
    return urls


class GroqCompoundClient:
    """Chat completion against a Groq compound model, retried per policy."""

    name = "groq"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or settings.llm.groq.api_key.get_secret_value()
        self.model = model or settings.llm.groq.model
        self._retry_policy = retry_policy or default_groq_retry_policy()
        self._transport = transport

        if not self._api_key:
            raise LLMConfigurationError("GROQ_API_KEY is not configured", provider=self.name)

    async def search(self, system_prompt: str, user_prompt: str) -> WebSearchResponse:
        """
        Ask the compound model; it searches the web on its own.

        Raises:
            LLMError: after the retry policy is exhausted
        """
        messages = [
            LLMMessage(role="system", content=system_prompt).to_dict(),
            LLMMessage(role="user", content=user_prompt).to_dict(),
        ]
        start_time = time.perf_counter()
        payload = await self._retry_policy.call(self._post, {"model": self.model, "messages": messages})
        latency_ms = (time.perf_counter() - start_time) * 1000

        choices = payload.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        sources = tool_result_urls(payload)

        logger.info(
            "groq_compound_completed",
            model=self.model,
            sources=len(sources),
            latency_ms=round(latency_ms, 2),
        )
        return WebSearchResponse(
            content=content,
            citations=sources,
            model=self.model,
            provider=self.name,
            latency_ms=latency_ms,
        )

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=settings.llm.groq.base_url,
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
                logger.error("groq_transport_error", error=str(e))
                raise LLMTransportError(f"Groq request failed: {e}", provider=self.name) from e

        if response.status_code >= 400:
            logger.error("groq_api_error", status_code=response.status_code, body=response.text)
            raise error_for_status(self.name, response.status_code, response.text)

        return response.json()
