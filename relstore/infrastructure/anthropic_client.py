"""Resilient Anthropic Client — one-shot text completions for record extraction.

Invariants:
    - Satisfies core.repository_protocols.TextCompleter: complete(prompt, system) -> str
    - 429 rate limits wait for Retry-After when sent, else exponential backoff
    - 5xx, 529 overloaded and connection failures retry up to max_retries times
    - Timeouts and other 4xx responses fail on the first attempt
    - Every failure leaves as ExtractionError with a machine-readable reason

Design Decisions:
    - SDK retries disabled (max_retries=0): one retry policy, logged per attempt
    - Failures classified once in _classify; the loop only sleeps or raises
    - ±25% jitter on backoff delays
"""

import asyncio
import logging
import random
from typing import NamedTuple

import anthropic
from anthropic import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    InternalServerError,
    RateLimitError,
)

from relstore.core.errors import ErrorContext, ExtractionError

logger = logging.getLogger(__name__)

_OVERLOADED_STATUS = 529


class _Failure(NamedTuple):
    reason: str
    retryable: bool
    wait_ms: int | None = None


class ResilientAnthropicClient:
    """AsyncAnthropic messages.create behind retry, backoff and error mapping."""

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 2048,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 30_000,
        timeout_seconds: int = 60,
    ):
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key, timeout=timeout_seconds, max_retries=0,
        )
        self.model = model
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def complete(
        self, prompt: str, system: str, context: ErrorContext | None = None,
    ) -> str:
        """Send one user turn; return the reply's text blocks joined together."""
        attempt = 0
        while True:
            try:
                response = await self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=system,
                    messages=[{"role": "user", "content": prompt}],
                )
            except APIError as e:
                failure = self._classify(e)
                if not failure.retryable or attempt >= self.max_retries:
                    raise ExtractionError(
                        self._final_message(failure, e), failure.reason, context=context,
                    )
                delay = failure.wait_ms or self._backoff(attempt)
                logger.warning(
                    f"Anthropic {failure.reason}, retrying in {delay}ms",
                    extra={"attempt": attempt + 1},
                )
                await asyncio.sleep(delay / 1000)
                attempt += 1
                continue

            usage = response.usage
            logger.info(
                f"Anthropic reply from {self.model}",
                extra={
                    "attempt": attempt + 1,
                    "input_tokens": usage.input_tokens,
                    "output_tokens": usage.output_tokens,
                },
            )
            return "".join(
                block.text for block in response.content
                if getattr(block, "type", None) == "text"
            )

    def _classify(self, e: APIError) -> _Failure:
        if isinstance(e, APITimeoutError):
            return _Failure("timeout", retryable=False)
        if isinstance(e, RateLimitError):
            return _Failure("rate_limit", retryable=True, wait_ms=self._retry_after_ms(e))
        if isinstance(e, (APIConnectionError, InternalServerError)):
            return _Failure("connection_error", retryable=True)
        if isinstance(e, APIStatusError) and e.status_code == _OVERLOADED_STATUS:
            return _Failure("connection_error", retryable=True)
        return _Failure("client_error", retryable=False)

    def _final_message(self, failure: _Failure, e: APIError) -> str:
        if failure.reason == "rate_limit":
            return "Rate limit exceeded after retries"
        if failure.retryable:
            return f"Transient failure after {self.max_retries} retries: {e}"
        if failure.reason == "timeout":
            return "API timeout"
        return str(e)

    def _backoff(self, attempt: int) -> int:
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _retry_after_ms(self, error: RateLimitError) -> int | None:
        response = getattr(error, "response", None)
        if response is None:
            return None
        value = response.headers.get("retry-after")
        try:
            return int(float(value) * 1000) if value else None
        except ValueError:
            return None
