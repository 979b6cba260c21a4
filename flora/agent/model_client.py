from __future__ import annotations

import asyncio
import random
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

import structlog
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from flora.infra.errors import ProviderError

logger = structlog.get_logger()

T = TypeVar("T")

_RETRYABLE = (APIConnectionError, APITimeoutError, RateLimitError)


@dataclass(frozen=True)
class Completion:
    """Text returned by a completion backend."""

    content: str


class CompletionBackend(Protocol):
    """The single capability the core needs from a language model."""

    async def complete(self, prompt: str, *, temperature: float) -> Completion: ...


def _first_choice(response, *, context: str = ""):
    """Extract first choice from response, raising ProviderError if empty."""
    if not response.choices:
        raise ProviderError(f"Empty choices from provider ({context})")
    return response.choices[0]


class OpenAICompatBackend:
    """Completion backend using the OpenAI SDK.

    Works with OpenAI and Anthropic via OpenAI-compatible endpoints.
    Includes exponential backoff retry for transient errors.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._model = model
        self._max_retries = max_retries
        self._base_delay = base_delay

    @property
    def model(self) -> str:
        return self._model

    async def _retry_call(
        self,
        coro_factory: Callable[[], Coroutine[Any, Any, T]],
        *,
        context: str = "",
    ) -> T:
        """Execute an async call with exponential backoff retry.

        Retries on: APIConnectionError, APITimeoutError, RateLimitError.
        Non-retryable API errors are wrapped in ProviderError.
        """
        for attempt in range(self._max_retries + 1):
            try:
                return await coro_factory()
            except _RETRYABLE as e:
                if attempt == self._max_retries:
                    raise ProviderError(
                        f"Completion failed after {self._max_retries + 1} attempts: {e}"
                    ) from e
                delay = self._base_delay * (2**attempt) + random.uniform(0, 0.5)
                logger.warning(
                    "completion_retry",
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                    delay=round(delay, 2),
                    error=str(e),
                    context=context,
                )
                await asyncio.sleep(delay)
            except APIStatusError as e:
                raise ProviderError(
                    f"Completion API error: {e.status_code} {e.message}"
                ) from e
        # Unreachable, but satisfies type checker
        raise ProviderError("Retry loop exhausted")  # pragma: no cover

    async def complete(self, prompt: str, *, temperature: float) -> Completion:
        """Send the prompt as a single user message and return the reply."""
        logger.debug("completion_request", model=self._model, prompt_chars=len(prompt))
        response = await self._retry_call(
            lambda: self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
            ),
            context="complete",
        )
        content = _first_choice(response, context="complete").message.content or ""
        logger.debug("completion_response", chars=len(content))
        return Completion(content=content)


class StaticBackend:
    """Deterministic backend returning a fixed reply. Records every prompt."""

    def __init__(self, reply: str | Callable[[str], str]) -> None:
        self._reply = reply
        self.calls: list[tuple[str, float]] = []

    async def complete(self, prompt: str, *, temperature: float) -> Completion:
        self.calls.append((prompt, temperature))
        content = self._reply(prompt) if callable(self._reply) else self._reply
        return Completion(content=content)
