"""
LLM Errors
==========

Exception hierarchy shared by every AI provider. Routes map these onto
HTTP responses via `status_code`.

Version: 0.1.0
"""


class LLMError(Exception):
    """Base class for AI provider failures."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.body = body
        if status_code is not None:
            self.status_code = status_code


class LLMConfigurationError(LLMError):
    """Provider is missing credentials or is otherwise unusable."""


class LLMRateLimitError(LLMError):
    """Provider answered 429."""

    status_code = 429


class LLMQuotaExceededError(LLMError):
    """Provider answered 402 (credits exhausted)."""

    status_code = 402


class LLMUpstreamError(LLMError):
    """Provider answered with any other non-success status."""


class LLMTransportError(LLMError):
    """Connection failure or timeout before a response arrived."""


RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again in a moment."
QUOTA_MESSAGE = "AI credits exhausted. Please add credits to continue."


def error_for_status(provider: str, status_code: int, body: str = "") -> LLMError:
    """
    Build the exception matching a non-2xx provider response.

    Args:
        provider: Provider name for context
        status_code: HTTP status returned by the provider
        body: Raw response body (kept for logs, never shown to users)
    """
    if status_code == 429:
        return LLMRateLimitError(RATE_LIMIT_MESSAGE, provider=provider, body=body)
    if status_code == 402:
        return LLMQuotaExceededError(QUOTA_MESSAGE, provider=provider, body=body)
    return LLMUpstreamError(
        f"{provider} API error: {status_code}",
        provider=provider,
        body=body,
    )
