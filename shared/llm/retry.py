"""
Retry Policy
============

Explicit retry policy for outbound AI calls. The policy is attached to a
client, not to a call site, so the same client code runs with or without
retries.

Version: 0.1.0
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from shared.llm.errors import LLMRateLimitError, LLMTransportError
from shared.logging import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "llm_call_retry",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc) if exc else None,
    )


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with linearly increasing delay.

    The n-th retry waits `delay_seconds * n`. Only exceptions listed in
    `retry_on` are retried; anything else propagates on the first attempt.
    """

    max_retries: int = 0
    delay_seconds: float = 1.0
    retry_on: tuple[type[BaseException], ...] = (LLMRateLimitError, LLMTransportError)
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, compare=False)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Invoke `fn`, retrying according to the policy."""
        if self.max_retries <= 0:
            return await fn(*args, **kwargs)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.delay_seconds, increment=self.delay_seconds),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=_log_retry,
            sleep=self.sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await fn(*args, **kwargs)
        return result


NO_RETRY = RetryPolicy()
