"""Model fallback policy.

Runs one generation against an ordered list of candidate models. A
candidate that is rate limited or rejects the model id hands over to the
next one; any other provider failure stops the run immediately. When every
candidate has been used up the run fails with AllCandidatesExhaustedError.

The same policy serves streaming chat, one-shot chat, titles and study
artifacts.

Examples:
    >>> runner = FallbackRunner(provider, catalog)
    >>> response = await runner.complete(messages, requested_model="openai/gpt-4-turbo")
    >>> async for delta in runner.stream(messages, requires_image=True):
    ...     print(delta.model, delta.text)

Tests:
    - tests/unit/test_fallback.py
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

from app.core.catalog import ModelCatalog
from app.core.errors import AllCandidatesExhaustedError, NoCandidatesError
from app.core.providers import LLMProvider, LLMResponse, PromptMessage, ProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamDelta:
    """A text delta tagged with the candidate that produced it.

    Attributes:
        model: Model id of the current attempt
        text: The delta
        attempt: Zero-based index of the attempt; a new value means the
            previous candidate failed and output restarts from scratch
    """

    model: str
    text: str
    attempt: int


def should_advance(error: ProviderError) -> bool:
    """Whether the next candidate should be tried after this failure."""
    return error.retryable


class FallbackRunner:
    """Drive a provider through the candidate list for one request.

    Attributes:
        provider: Chat-completion provider
        catalog: Model catalog used for candidate selection
    """

    def __init__(self, provider: LLMProvider, catalog: ModelCatalog) -> None:
        self.provider = provider
        self.catalog = catalog

    def candidates(
        self,
        requested_model: str | None,
        requires_image: bool = False,
        default_model: str | None = None,
    ) -> list[str]:
        """Select candidates for a request.

        Raises:
            NoCandidatesError: If selection yields nothing.
        """
        candidates = self.catalog.select_candidates(
            requested_model,
            requires_image,
            default_model_id=default_model,
        )
        if not candidates:
            raise NoCandidatesError()
        return candidates

    def _record_failure(
        self,
        model: str,
        error: ProviderError,
        attempts: list[tuple[str, ProviderError]],
        remaining: int,
    ) -> None:
        """Record a failed attempt or re-raise a non-retryable error."""
        if not should_advance(error):
            logger.error(f"Model {model} failed with non-retryable {error.kind.value}: {error}")
            raise error
        attempts.append((model, error))
        if remaining:
            logger.warning(f"Model {model} unavailable ({error.kind.value}), trying next model")
        else:
            logger.warning(f"Model {model} unavailable ({error.kind.value}), no candidates left")

    async def complete(
        self,
        messages: list[PromptMessage],
        *,
        requested_model: str | None = None,
        requires_image: bool = False,
        default_model: str | None = None,
        **kwargs: Any,
    ) -> LLMResponse[str]:
        """One-shot completion with fallback.

        Args:
            messages: Prompt messages.
            requested_model: Model the caller asked for.
            requires_image: Whether any message carries an image.
            default_model: Default used when requested_model is unknown.
            **kwargs: Passed to the provider (temperature, json_mode, ...).

        Returns:
            LLMResponse from the first candidate that succeeded.

        Raises:
            AllCandidatesExhaustedError: Every candidate failed retryably.
            ProviderError: A non-retryable failure.
        """
        candidates = self.candidates(requested_model, requires_image, default_model)
        attempts: list[tuple[str, ProviderError]] = []

        for index, model in enumerate(candidates):
            logger.info(f"Trying model: {model}")
            try:
                response = await self.provider.complete_chat(model, messages, **kwargs)
            except ProviderError as e:
                self._record_failure(model, e, attempts, len(candidates) - index - 1)
                continue
            logger.info(f"Success with model: {model} ({response.latency_ms}ms)")
            return response

        raise AllCandidatesExhaustedError(attempts)

    async def stream(
        self,
        messages: list[PromptMessage],
        *,
        requested_model: str | None = None,
        requires_image: bool = False,
        default_model: str | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[StreamDelta]:
        """Streaming completion with fallback.

        Deltas from a candidate that later fails have already been yielded;
        consumers detect the restart through StreamDelta.attempt. Closing
        this iterator closes the provider stream underneath it.

        Raises:
            AllCandidatesExhaustedError: Every candidate failed retryably.
            ProviderError: A non-retryable failure.
        """
        candidates = self.candidates(requested_model, requires_image, default_model)
        attempts: list[tuple[str, ProviderError]] = []

        for index, model in enumerate(candidates):
            logger.info(f"Trying model: {model}")
            try:
                async with aclosing(self.provider.stream_chat(model, messages, **kwargs)) as deltas:
                    async for text in deltas:
                        yield StreamDelta(model=model, text=text, attempt=index)
            except ProviderError as e:
                self._record_failure(model, e, attempts, len(candidates) - index - 1)
                continue
            logger.info(f"Success with model: {model}")
            return

        raise AllCandidatesExhaustedError(attempts)
