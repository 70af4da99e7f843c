"""
LLM Provider Module
===================

Abstraction layer for the AI providers Labelwise talks to.

Providers:
- AI gateway (OpenAI-compatible, Gemini reasoning and vision models; default)
- Anthropic Claude
- OpenAI (chat completions and Responses API web search)

Search clients:
- Groq compound (retrying)
- Perplexity sonar

Usage:
    from shared.llm import ModelRole, get_llm_provider

    provider = get_llm_provider(ModelRole.VISION)
    text = await provider.generate_text(prompt, images=[data_url])
"""

from shared.llm.errors import (
    LLMConfigurationError,
    LLMError,
    LLMQuotaExceededError,
    LLMRateLimitError,
    LLMTransportError,
    LLMUpstreamError,
)
from shared.llm.provider import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    LLMUsage,
    ModelRole,
    WebSearchResponse,
    extract_json_array,
    extract_json_object,
    get_llm_provider,
    reset_llm_provider,
    set_llm_provider,
)
from shared.llm.retry import NO_RETRY, RetryPolicy

__all__ = [
    # Base
    "LLMProvider",
    "LLMMessage",
    "LLMResponse",
    "LLMUsage",
    "ModelRole",
    "WebSearchResponse",
    "get_llm_provider",
    "set_llm_provider",
    "reset_llm_provider",
    "extract_json_array",
    "extract_json_object",
    # Retry
    "RetryPolicy",
    "NO_RETRY",
    # Errors
    "LLMError",
    "LLMConfigurationError",
    "LLMRateLimitError",
    "LLMQuotaExceededError",
    "LLMUpstreamError",
    "LLMTransportError",
]
