"""
AI Gateway Provider
===================

OpenAI-compatible AI gateway fronting the Gemini models. One instance per
model role: the reasoning model scores rules and diffs regulations, the
vision model reads label panels.

Version: 0.1.0
"""

from shared.config import settings
from shared.llm.openai import OpenAIProvider
from shared.llm.provider import ModelRole
from shared.llm.retry import NO_RETRY, RetryPolicy


class GatewayProvider(OpenAIProvider):
    """Chat completions through the configured AI gateway."""

    provider_name = "gateway"

    def __init__(
        self,
        role: ModelRole = ModelRole.REASONING,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        retry_policy: RetryPolicy = NO_RETRY,
    ) -> None:
        gateway = settings.llm.gateway
        default_model = (
            gateway.vision_model if role == ModelRole.VISION else gateway.reasoning_model
        )
        super().__init__(
            api_key=api_key or gateway.api_key.get_secret_value(),
            model=model or default_model,
            base_url=base_url or gateway.base_url,
            retry_policy=retry_policy,
        )
        self.role = role
