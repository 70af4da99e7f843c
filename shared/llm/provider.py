"""
LLM Provider Base
=================

Abstract base class and common models for LLM providers, plus helpers for
pulling JSON out of free-form model replies.

Version: 0.1.0
"""

import json
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from shared.config import settings, LLMProvider as LLMProviderEnum
from shared.logging import get_logger

logger = get_logger(__name__)


class MessageRole(str, Enum):
    """Message role in conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ModelRole(str, Enum):
    """What a provider instance is used for."""

    REASONING = "reasoning"
    VISION = "vision"


ResponseFormat = Literal["text", "json_object"]


class LLMMessage(BaseModel):
    """A message in the conversation, optionally carrying images as data URLs."""

    role: MessageRole | Literal["system", "user", "assistant"]
    content: str
    images: list[str] = Field(default_factory=list)

    @property
    def role_name(self) -> str:
        return self.role.value if isinstance(self.role, MessageRole) else self.role

    def to_dict(self) -> dict[str, Any]:
        """Convert to OpenAI-style chat message."""
        if not self.images:
            return {"role": self.role_name, "content": self.content}
        parts: list[dict[str, Any]] = [{"type": "text", "text": self.content}]
        parts.extend({"type": "image_url", "image_url": {"url": url}} for url in self.images)
        return {"role": self.role_name, "content": parts}


class LLMUsage(BaseModel):
    """Token usage information."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(BaseModel):
    """Response from LLM provider."""

    content: str = Field(..., description="Generated text content")
    model: str = Field(..., description="Model used for generation")
    provider: str = Field(..., description="Provider name")
    usage: LLMUsage = Field(default_factory=LLMUsage)
    finish_reason: str | None = None

    latency_ms: float = 0.0
    raw_response: dict[str, Any] | None = None


class WebSearchResponse(BaseModel):
    """Reply from a search-enabled model along with the URLs it actually consulted."""

    content: str
    citations: list[str] = Field(default_factory=list)
    model: str
    provider: str
    latency_ms: float = 0.0


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Implements the Strategy pattern for swappable LLM backends.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_format: ResponseFormat | None = None,
    ) -> LLMResponse:
        """
        Generate a completion for the given messages.

        Args:
            messages: Conversation messages
            temperature: Sampling temperature (0.0-1.0)
            max_tokens: Maximum tokens to generate
            response_format: "json_object" to request a JSON-only reply where supported

        Returns:
            LLMResponse with generated content

        Raises:
            LLMError: on any provider failure
        """
        ...

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """
        Check provider health.

        Returns:
            dict with status and provider info
        """
        ...

    async def generate_text(
        self,
        prompt: str,
        system_prompt: str | None = None,
        images: list[str] | None = None,
        **kwargs: Any,
    ) -> str:
        """
        Simple text generation helper.

        Args:
            prompt: User prompt
            system_prompt: Optional system prompt
            images: Optional image data URLs attached to the user message
            **kwargs: Additional arguments for complete()

        Returns:
            Generated text content
        """
        messages = []
        if system_prompt:
            messages.append(LLMMessage(role="system", content=system_prompt))
        messages.append(LLMMessage(role="user", content=prompt, images=images or []))

        response = await self.complete(messages, **kwargs)
        return response.content


def _extract_balanced(text: str, opener: str, closer: str) -> str | None:
    """Return the first balanced `opener...closer` span, ignoring brackets inside strings."""
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        # Unbalanced from this opener; try the next one
        start = text.find(opener, start + 1)
    return None


def extract_json_array(text: str) -> list[Any] | None:
    """
    Parse the first top-level JSON array embedded in a model reply.

    Models wrap JSON in prose or code fences, so the array is located by
    bracket matching. Returns None when no parseable array exists.
    """
    span = _extract_balanced(text, "[", "]")
    if span is None:
        return None
    try:
        value = json.loads(span)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, list) else None


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Parse the first top-level JSON object embedded in a model reply."""
    span = _extract_balanced(text, "{", "}")
    if span is None:
        return None
    try:
        value = json.loads(span)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


# Provider instances per role
_providers: dict[ModelRole, LLMProvider] = {}


def _build_provider(role: ModelRole) -> LLMProvider:
    provider_type = settings.llm.provider

    if provider_type == LLMProviderEnum.GATEWAY:
        from shared.llm.gateway import GatewayProvider

        return GatewayProvider(role=role)
    if provider_type == LLMProviderEnum.CLAUDE:
        from shared.llm.claude import ClaudeProvider

        return ClaudeProvider()
    if provider_type == LLMProviderEnum.OPENAI:
        from shared.llm.openai import OpenAIProvider

        return OpenAIProvider()
    raise ValueError(f"Unknown LLM provider: {provider_type}")


def get_llm_provider(role: ModelRole = ModelRole.REASONING) -> LLMProvider:
    """
    Get the configured LLM provider instance for a role.

    Uses the provider specified in settings.llm.provider.
    Creates and caches the instance on first call.
    """
    if role not in _providers:
        provider = _build_provider(role)
        _providers[role] = provider
        logger.info(
            "llm_provider_initialized",
            role=role.value,
            provider=provider.name,
            model=provider.model,
        )
    return _providers[role]


def set_llm_provider(provider: LLMProvider, role: ModelRole | None = None) -> None:
    """
    Set a custom LLM provider for one role, or for every role when omitted.

    Useful for testing or custom implementations.
    """
    roles = [role] if role is not None else list(ModelRole)
    for r in roles:
        _providers[r] = provider
    logger.info(
        "llm_provider_set",
        roles=[r.value for r in roles],
        provider=provider.name,
        model=provider.model,
    )


def reset_llm_provider() -> None:
    """Reset providers to be re-initialized on next access."""
    _providers.clear()
