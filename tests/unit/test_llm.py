"""
Tests for AI Provider Helpers
=============================

Tests for:
- JSON extraction from model replies
- Provider error mapping
- Retry policy
- Groq compound and Perplexity search clients
"""

import json
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
from pydantic import SecretStr

from shared.llm import (
    LLMConfigurationError,
    LLMQuotaExceededError,
    LLMRateLimitError,
    LLMTransportError,
    LLMUpstreamError,
    RetryPolicy,
    extract_json_array,
    extract_json_object,
)
from shared.llm.errors import error_for_status
from shared.llm.groq import GroqCompoundClient, tool_result_urls
from shared.llm.perplexity import PerplexityClient, citation_urls


def _chat_reply(content: str, **extra: Any) -> dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}], **extra}


# ============================================================================
# JSON extraction
# ============================================================================


class TestExtractJson:
    """Tests for locating JSON inside prose replies."""

    def test_array_inside_code_fence(self) -> None:
        text = 'Here you go:\n```json\n[{"ruleId": "a", "status": "pass"}]\n```'

        assert extract_json_array(text) == [{"ruleId": "a", "status": "pass"}]

    def test_brackets_inside_strings_are_ignored(self) -> None:
        text = 'Result: [{"explanation": "see [1] and ]"}] trailing'

        assert extract_json_array(text) == [{"explanation": "see [1] and ]"}]

    def test_no_array_returns_none(self) -> None:
        assert extract_json_array("No changes detected.") is None

    def test_invalid_json_returns_none(self) -> None:
        assert extract_json_array("[not json]") is None

    def test_object_extraction(self) -> None:
        text = 'Sure. {"productName": "Gummies", "warnings": ["Keep away"]} Done.'

        assert extract_json_object(text) == {
            "productName": "Gummies",
            "warnings": ["Keep away"],
        }

    def test_object_missing_returns_none(self) -> None:
        assert extract_json_object("just text") is None


# ============================================================================
# Error mapping
# ============================================================================


class TestErrorForStatus:
    """Tests for mapping provider HTTP statuses to exceptions."""

    def test_rate_limit(self) -> None:
        error = error_for_status("groq", 429, "slow down")

        assert isinstance(error, LLMRateLimitError)
        assert error.status_code == 429
        assert "Rate limit" in error.message

    def test_quota(self) -> None:
        error = error_for_status("gateway", 402)

        assert isinstance(error, LLMQuotaExceededError)
        assert error.status_code == 402

    def test_other_status_is_upstream_500(self) -> None:
        error = error_for_status("openai", 503, "unavailable")

        assert isinstance(error, LLMUpstreamError)
        assert error.status_code == 500
        assert error.body == "unavailable"
        assert "503" in error.message


# ============================================================================
# Retry policy
# ============================================================================


class TestRetryPolicy:
    """Tests for bounded retry with linear backoff."""

    @pytest.mark.asyncio
    async def test_no_retries_calls_once(self) -> None:
        fn = AsyncMock(side_effect=LLMRateLimitError("busy"))

        with pytest.raises(LLMRateLimitError):
            await RetryPolicy(max_retries=0).call(fn)

        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        sleep = AsyncMock()
        fn = AsyncMock(side_effect=[LLMRateLimitError("busy"), LLMTransportError("reset"), "ok"])
        policy = RetryPolicy(max_retries=2, delay_seconds=1.0, sleep=sleep)

        assert await policy.call(fn) == "ok"
        assert fn.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        fn = AsyncMock(side_effect=LLMRateLimitError("busy"))
        policy = RetryPolicy(max_retries=2, sleep=AsyncMock())

        with pytest.raises(LLMRateLimitError):
            await policy.call(fn)

        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self) -> None:
        fn = AsyncMock(side_effect=LLMUpstreamError("bad request", status_code=500))
        policy = RetryPolicy(max_retries=3, sleep=AsyncMock())

        with pytest.raises(LLMUpstreamError):
            await policy.call(fn)

        assert fn.await_count == 1


# ============================================================================
# Groq compound client
# ============================================================================


class TestGroqCompoundClient:
    """Tests for the Groq compound search client."""

    def test_missing_key_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from shared.config import settings

        monkeypatch.setattr(settings.llm.groq, "api_key", SecretStr(""))

        with pytest.raises(LLMConfigurationError):
            GroqCompoundClient()

    def test_tool_result_urls(self) -> None:
        payload = {
            "tool_results": [
                {"name": "web_search", "result": [{"url": "https://a.gov/x"}, {"url": "https://a.gov/x"}]},
                {"name": "code_interpreter", "result": [{"url": "https://ignored.example"}]},
                {"name": "web_search", "result": "not a list"},
                {"name": "web_search", "result": [{"title": "no url"}, {"url": "https://b.gov/y"}]},
            ]
        }

        assert tool_result_urls(payload) == ["https://a.gov/x", "https://b.gov/y"]

    @pytest.mark.asyncio
    async def test_search_returns_content_and_sources(self) -> None:
        seen: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            assert request.headers["Authorization"] == "Bearer test-key"
            assert request.url.path.endswith("/chat/completions")
            return httpx.Response(
                200,
                json=_chat_reply(
                    "[]",
                    tool_results=[{"name": "web_search", "result": [{"url": "https://mt.gov/rules"}]}],
                ),
            )

        client = GroqCompoundClient(
            api_key="test-key",
            model="groq/compound",
            retry_policy=RetryPolicy(max_retries=0),
            transport=httpx.MockTransport(handler),
        )
        reply = await client.search("system", "user")

        assert reply.content == "[]"
        assert reply.citations == ["https://mt.gov/rules"]
        assert reply.provider == "groq"
        assert seen[0]["model"] == "groq/compound"
        assert [m["role"] for m in seen[0]["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self) -> None:
        responses = [
            httpx.Response(429, text="rate limited"),
            httpx.Response(200, json=_chat_reply("done")),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        sleep = AsyncMock()
        client = GroqCompoundClient(
            api_key="test-key",
            retry_policy=RetryPolicy(max_retries=2, sleep=sleep),
            transport=httpx.MockTransport(handler),
        )
        reply = await client.search("system", "user")

        assert reply.content == "done"
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_quota_error_is_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(402, text="no credits")

        client = GroqCompoundClient(
            api_key="test-key",
            retry_policy=RetryPolicy(max_retries=3, sleep=AsyncMock()),
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(LLMQuotaExceededError):
            await client.search("system", "user")
        assert calls == 1

    @pytest.mark.asyncio
    async def test_transport_failure_maps_to_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = GroqCompoundClient(
            api_key="test-key",
            retry_policy=RetryPolicy(max_retries=0),
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(LLMTransportError):
            await client.search("system", "user")


# ============================================================================
# Perplexity client
# ============================================================================


class TestPerplexityClient:
    """Tests for the Perplexity search client."""

    def test_citation_urls_accepts_strings_and_objects(self) -> None:
        payload = {"citations": ["https://a.gov", {"url": "https://b.gov"}, "https://a.gov", {}]}

        assert citation_urls(payload) == ["https://a.gov", "https://b.gov"]

    @pytest.mark.asyncio
    async def test_domain_filter_sent(self) -> None:
        seen: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(
                200,
                json=_chat_reply("Montana updated its THC limits.", citations=["https://rules.mt.gov/x"]),
            )

        client = PerplexityClient(api_key="test-key", transport=httpx.MockTransport(handler))
        reply = await client.search("system", "user", domains=["mt.gov"])

        assert reply.citations == ["https://rules.mt.gov/x"]
        assert seen[0]["search_domain_filter"] == ["mt.gov"]
        assert seen[0]["return_citations"] is True

    @pytest.mark.asyncio
    async def test_error_status_raises(self) -> None:
        client = PerplexityClient(
            api_key="test-key",
            transport=httpx.MockTransport(lambda request: httpx.Response(429)),
        )

        with pytest.raises(LLMRateLimitError):
            await client.search("system", "user")
