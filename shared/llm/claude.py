"""
Claude Provider
===============

Anthropic Claude API implementation. Serves both reasoning and vision roles;
image data URLs are converted to base64 image blocks.

Version: 0.1.0
"""

import re
import time
from typing import Any

import anthropic

from shared.config import settings
from shared.llm.errors import (
    LLMConfigurationError,
    LLMError,
    LLMTransportError,
    error_for_status,
)
from shared.llm.provider import LLMMessage, LLMProvider, LLMResponse, LLMUsage, ResponseFormat
from shared.llm.retry import NO_RETRY, RetryPolicy
from shared.logging import get_logger

logger = get_logger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:(?P<media_type>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)


def image_block(data_url: str) -> dict[str, Any]:
    """Convert a base64 data URL into an Anthropic image content block."""
    match = DATA_URL_PATTERN.match(data_url)
    if match is None:
        return {"type": "image", "source": {"type": "url", "url": data_url}}
    return {
        "type": "image",
        "source": {
            "type": "base64",
            "media_type": match["media_type"],
            "data": match["data"],
        },
    }


class ClaudeProvider(LLMProvider):
    """Anthropic Claude provider implementation."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        retry_policy: RetryPolicy = NO_RETRY,
    ) -> None:
        """
        Initialize Claude provider.

        Args:
            api_key: Anthropic API key (default from settings)
            model: Model to use (default from settings)
            retry_policy: Retry behaviour for outbound calls
        """
        self._api_key = api_key or settings.llm.claude.api_key.get_secret_value()
        self._model = model or settings.llm.claude.model
        self._max_tokens = settings.llm.claude.max_tokens
        self._retry_policy = retry_policy

        if not self._api_key:
            raise LLMConfigurationError("Anthropic API key not configured", provider="claude")

        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key,
            timeout=settings.llm.timeout_seconds,
            max_retries=0,
        )

        logger.debug("claude_provider_initialized", model=self._model)

    @property
    def name(self) -> str:
        return "claude"

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
        """Generate a completion using Claude."""
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

        system_parts: list[str] = []
        api_messages: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role_name == "system":
                system_parts.append(msg.content)
                continue
            if msg.images:
                content: Any = [image_block(url) for url in msg.images]
                content.append({"type": "text", "text": msg.content})
            else:
                content = msg.content
            api_messages.append({"role": msg.role_name, "content": content})

        # Claude has no JSON mode; ask for it in the system prompt
        if response_format == "json_object":
            system_parts.append("Respond ONLY with a valid JSON object. No markdown, no explanation.")

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": api_messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": temperature if temperature is not None else settings.llm.temperature,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIStatusError as e:
            error: LLMError = error_for_status(self.name, e.status_code, e.response.text)
            logger.error("claude_completion_failed", status_code=e.status_code, error=str(e))
            raise error from e
        except anthropic.APIConnectionError as e:
            logger.error("claude_transport_error", error=str(e))
            raise LLMTransportError(f"claude request failed: {e}", provider=self.name) from e

        latency_ms = (time.perf_counter() - start_time) * 1000

        content_text = "".join(block.text for block in response.content if hasattr(block, "text"))

        usage = LLMUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )

        logger.debug(
            "claude_completion",
            model=self._model,
            tokens=usage.total_tokens,
            latency_ms=round(latency_ms, 2),
        )

        return LLMResponse(
            content=content_text,
            model=response.model,
            provider=self.name,
            usage=usage,
            finish_reason=response.stop_reason,
            latency_ms=latency_ms,
        )

    async def health_check(self) -> dict[str, Any]:
        """
        Check Claude API health.

        Returns:
            dict with status and model info
        """
        try:
            start = time.perf_counter()
            await self._client.messages.create(
                model=self._model,
                messages=[{"role": "user", "content": "Hi"}],
                max_tokens=5,
            )
            latency_ms = (time.perf_counter() - start) * 1000

            return {
                "status": "healthy",
                "provider": self.name,
                "model": self._model,
                "latency_ms": round(latency_ms, 2),
            }

        except anthropic.AnthropicError as e:
            logger.error("claude_health_check_failed", error=str(e))
            return {
                "status": "unhealthy",
                "provider": self.name,
                "model": self._model,
                "error": str(e),
            }
