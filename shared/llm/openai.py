"""
OpenAI Provider
===============

OpenAI chat completions plus the Responses API `web_search` tool.

Version: 0.1.0
"""

import time
from typing import Any

import openai

from shared.config import settings
from shared.llm.errors import (
    LLMConfigurationError,
    LLMError,
    LLMTransportError,
    error_for_status,
)
from shared.llm.provider import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    LLMUsage,
    ResponseFormat,
    WebSearchResponse,
)
from shared.llm.retry import NO_RETRY, RetryPolicy
from shared.logging import get_logger


logger = get_logger(__name__)


def translate_openai_error(provider: str, exc: openai.OpenAIError) -> LLMError:
    """Map an openai SDK exception onto the shared LLM error hierarchy."""
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return LLMTransportError(f"{provider} request failed: {exc}", provider=provider)
    if isinstance(exc, openai.APIStatusError):
        return error_for_status(provider, exc.status_code, exc.response.text)
    return LLMError(str(exc), provider=provider)


class OpenAIProvider(LLMProvider):
    """
    OpenAI-compatible chat completion provider.

    Subclasses point the same client at other OpenAI-compatible endpoints.
    """

    provider_name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        retry_policy: RetryPolicy = NO_RETRY,
    ) -> None:
        """
        Initialize OpenAI provider.

        Args:
            api_key: API key (default from settings)
            model: Model to use (default from settings)
            base_url: Override the API base URL
            retry_policy: Retry behaviour for outbound calls
        """
        self._api_key = api_key or settings.llm.openai.api_key.get_secret_value()
        self._model = model or settings.llm.openai.model
        self._retry_policy = retry_policy

        if not self._api_key:
            raise LLMConfigurationError(
                f"{self.provider_name} API key not configured",
                provider=self.provider_name,
            )

        # The retry policy owns retries; the SDK must not retry on its own
        self._client = openai.AsyncOpenAI(
            api_key=self._api_key,
            base_url=base_url,
            timeout=settings.llm.timeout_seconds,
            max_retries=0,
        )

        logger.debug(f"{self.provider_name}_provider_initialized", model=self._model)

    @property
    def name(self) -> str:
        return self.provider_name

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_format: ResponseFormat | None = None,
    ) -> LLMResponse:
        """Generate a chat completion."""
        return await self._retry_policy.call(
            self._complete, messages, temperature, max_tokens, response_format
        )

    async def _complete(
        self,
        messages: list[LLMMessage],
        temperature: float | None,
        max_tokens: int | None,
        response_format: ResponseFormat | None,
    ) -> LLMResponse:
        start_time = time.perf_counter()

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [msg.to_dict() for msg in messages],
            "temperature": temperature if temperature is not None else settings.llm.temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if response_format == "json_object":
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            error = translate_openai_error(self.name, e)
            logger.error(
                f"{self.name}_completion_failed",
                model=self._model,
                status_code=error.status_code,
                error=str(e),
            )
            raise error from e

        latency_ms = (time.perf_counter() - start_time) * 1000

        prompt_tokens = response.usage.prompt_tokens if response.usage else 0
        completion_tokens = response.usage.completion_tokens if response.usage else 0
        usage = LLMUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )

        logger.debug(
            f"{self.name}_completion",
            model=self._model,
            tokens=usage.total_tokens,
            latency_ms=round(latency_ms, 2),
        )

        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model,
            provider=self.name,
            usage=usage,
            finish_reason=response.choices[0].finish_reason,
            latency_ms=latency_ms,
        )

    async def web_search(
        self,
        prompt: str,
        region: str | None = None,
        context_size: str | None = None,
    ) -> WebSearchResponse:
        """
        Run a prompt through the Responses API with the `web_search` tool.

        Args:
            prompt: Research instructions
            region: Approximate user region (US state code) to bias results
            context_size: Search context size (low/medium/high)

        Returns:
            WebSearchResponse whose citations are the `url_citation` annotations
        """
        start_time = time.perf_counter()

        tool: dict[str, Any] = {
            "type": "web_search",
            "search_context_size": context_size or settings.llm.openai.search_context_size,
        }
        if region:
            tool["user_location"] = {"type": "approximate", "country": "US", "region": region}

        try:
            response = await self._retry_policy.call(
                self._client.responses.create,
                model=self._model,
                tools=[tool],
                input=prompt,
            )
        except openai.OpenAIError as e:
            error = translate_openai_error(self.name, e)
            logger.error("openai_web_search_failed", status_code=error.status_code, error=str(e))
            raise error from e

        citations: list[str] = []
        for item in response.output:
            if getattr(item, "type", None) != "message":
                continue
            for part in item.content:
                for annotation in getattr(part, "annotations", None) or []:
                    url = getattr(annotation, "url", None)
                    if getattr(annotation, "type", None) == "url_citation" and url:
                        if url not in citations:
                            citations.append(url)

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "openai_web_search_completed",
            citations=len(citations),
            latency_ms=round(latency_ms, 2),
        )

        return WebSearchResponse(
            content=response.output_text or "",
            citations=citations,
            model=self._model,
            provider=self.name,
            latency_ms=latency_ms,
        )

    async def health_check(self) -> dict[str, Any]:
        """
        Check API health.

        Returns:
            dict with status and model info
        """
        try:
            start = time.perf_counter()
            await self._client.models.list()
            latency_ms = (time.perf_counter() - start) * 1000

            return {
                "status": "healthy",
                "provider": self.name,
                "model": self._model,
                "latency_ms": round(latency_ms, 2),
            }

        except openai.OpenAIError as e:
            logger.error(f"{self.name}_health_check_failed", error=str(e))
            return {
                "status": "unhealthy",
                "provider": self.name,
                "model": self._model,
                "error": str(e),
            }
