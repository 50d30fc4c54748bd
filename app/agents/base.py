"""Base agent class for one-shot generation tasks.

Agents turn an input into a prompt, run it through the fallback policy and
interpret the reply. Titles and study artifacts are agents; the streaming
tutor conversation is driven by the relay instead.

Examples:
    >>> class MyAgent(BaseAgent[str, str]):
    ...     def get_prompt(self, input_data: str) -> str:
    ...         return f"Summarize: {input_data}"
    ...
    ...     async def run(self, input_data: str) -> AgentResult[str]:
    ...         response = await self._complete(self.get_prompt(input_data))
    ...         return AgentResult(success=True, content=response.content)

Tests:
    - tests/unit/test_titles.py
    - tests/unit/test_study_artifacts.py
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from app.core.fallback import FallbackRunner
from app.core.providers import LLMResponse, PromptMessage

logger = logging.getLogger(__name__)

# Type variables for input/output
InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


@dataclass
class AgentResult(Generic[OutputT]):
    """Result from an agent execution.

    Attributes:
        success: Whether the agent succeeded
        content: The output content (if successful)
        error: Error message (if failed)
        latency_ms: Execution time in milliseconds
        model_used: The LLM model used
        metadata: Additional metadata

    Examples:
        >>> result = AgentResult(success=True, content="Photosynthesis", latency_ms=150)
        >>> if result.success:
        ...     print(result.content)
    """

    success: bool
    content: OutputT | None = None
    error: str | None = None
    latency_ms: int = 0
    model_used: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        """Check if the agent failed."""
        return not self.success


class BaseAgent(ABC, Generic[InputT, OutputT]):
    """Abstract base class for generation agents.

    Attributes:
        runner: Fallback runner used for every model call
        default_model: Model tried first when the caller names none
        temperature: Sampling temperature
        name: Agent name for logging

    Subclasses must implement:
        - get_prompt(input_data) -> str
        - run(input_data) -> AgentResult
    """

    def __init__(
        self,
        runner: FallbackRunner,
        default_model: str | None = None,
        temperature: float = 0.5,
        name: str | None = None,
    ) -> None:
        """Initialize agent.

        Args:
            runner: Fallback runner
            default_model: Default model id (e.g. the generation model)
            temperature: Sampling temperature
            name: Agent name for logging (defaults to class name)
        """
        self.runner = runner
        self.default_model = default_model
        self.temperature = temperature
        self.name = name or self.__class__.__name__

    @abstractmethod
    def get_prompt(self, input_data: InputT) -> str:
        """Get the user prompt for this agent."""

    @abstractmethod
    async def run(self, input_data: InputT) -> AgentResult[OutputT]:
        """Execute the agent."""

    async def _complete(
        self,
        prompt: str,
        requested_model: str | None = None,
        **kwargs: Any,
    ) -> LLMResponse[str]:
        """Make a one-shot LLM call through the fallback policy.

        Args:
            prompt: The user prompt
            requested_model: Model the caller asked for, if any
            **kwargs: Passed to the provider (json_mode, max_tokens, ...)

        Returns:
            The first successful response.

        Raises:
            AllCandidatesExhaustedError: Every candidate failed retryably.
            ProviderError: A non-retryable provider failure.
        """
        start_time = time.perf_counter()
        logger.debug(f"{self.name}: calling LLM")

        response = await self.runner.complete(
            [PromptMessage(role="user", text=prompt)],
            requested_model=requested_model,
            default_model=self.default_model,
            temperature=self.temperature,
            **kwargs,
        )

        latency = int((time.perf_counter() - start_time) * 1000)
        logger.debug(f"{self.name}: completed in {latency}ms with {response.model}")
        return response
