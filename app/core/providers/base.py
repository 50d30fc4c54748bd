"""Base LLM provider abstraction layer.

This module defines the provider interface used by the chat relay, the
prompt message types it consumes, and the provider error taxonomy. Every
provider-specific failure is translated into one of the error classes below
at the provider boundary, so fallback logic never looks at HTTP status codes
or response bodies.

Error taxonomy:
    RateLimitError          retryable - try the next candidate model
    ModelRejectedError      retryable - model id unknown or refused
    AuthenticationError     fatal - missing/invalid key, no credits
    MalformedRequestError   fatal - the request itself was rejected
    ProviderTransientError  fatal at this layer - network, 5xx, broken stream

Examples:
    >>> from app.core.providers import PromptMessage, ImageAttachment
    >>> PromptMessage(role="user", text="What is in this diagram?",
    ...               image=ImageAttachment(mime_type="image/png", data=b"..."))

Tests:
    - tests/unit/test_providers.py
"""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

# Re-export ProviderType from config for convenience
from app.config import ProviderType

__all__ = [
    "AuthenticationError",
    "ImageAttachment",
    "LLMProvider",
    "LLMResponse",
    "MalformedRequestError",
    "ModelRejectedError",
    "PromptMessage",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderTransientError",
    "ProviderType",
    "RateLimitError",
]


class ImageAttachment(BaseModel):
    """An image sent inline with a user turn."""

    model_config = ConfigDict(frozen=True)

    mime_type: str
    data: bytes

    @property
    def data_url(self) -> str:
        """Inline data reference accepted by OpenAI-compatible chat APIs."""
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class PromptMessage(BaseModel):
    """One role-tagged message of a chat-completion prompt.

    User messages may carry an image; the provider decides how to encode it.
    """

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    text: str
    image: ImageAttachment | None = None

    def to_openai(self) -> dict[str, Any]:
        """Encode in the OpenAI chat-completions message format."""
        if self.image is None:
            return {"role": self.role, "content": self.text}
        return {
            "role": self.role,
            "content": [
                {"type": "text", "text": self.text},
                {"type": "image_url", "image_url": {"url": self.image.data_url}},
            ],
        }


T = TypeVar("T")


class LLMResponse(BaseModel, Generic[T]):
    """Standardized LLM response wrapper.

    Attributes:
        content: The response text
        model: Model ID that produced it
        provider: Provider used for generation
        usage: Token usage statistics
        latency_ms: Response latency in milliseconds
    """

    content: Any = Field(description="Response content")
    model: str = Field(description="Model ID used")
    provider: ProviderType = Field(description="Provider used")
    usage: dict[str, int] = Field(
        default_factory=dict,
        description="Token usage statistics",
    )
    latency_ms: int = Field(
        default=0,
        ge=0,
        description="Response latency in milliseconds",
    )


class LLMProvider(ABC):
    """Abstract base class for chat-completion providers.

    Attributes:
        provider_type: The provider type identifier
        api_key: API key for authentication (may be None when unconfigured)
    """

    provider_type: ProviderType

    def __init__(self, api_key: str | None) -> None:
        self.api_key = api_key

    @abstractmethod
    def stream_chat(
        self,
        model: str,
        messages: list[PromptMessage],
        **kwargs: Any,
    ) -> AsyncIterator[str]:
        """Stream text deltas for a chat completion.

        The returned iterator is lazy and can be consumed once. Closing it
        (``aclose()``) releases the underlying connection.

        Raises:
            ProviderError: Classified failure, before or during the stream.
        """

    @abstractmethod
    async def complete_chat(
        self,
        model: str,
        messages: list[PromptMessage],
        **kwargs: Any,
    ) -> LLMResponse[str]:
        """Return the complete text of a chat completion.

        Raises:
            ProviderError: Classified failure.
        """

    async def health_check(self) -> bool:
        """Check if the provider is accessible."""
        return True

    async def close(self) -> None:
        """Release network resources."""


class ProviderErrorKind(str, Enum):
    """Classification of provider failures."""

    RATE_LIMITED = "rate_limited"
    MODEL_REJECTED = "model_rejected"
    AUTHENTICATION = "authentication"
    MALFORMED_REQUEST = "malformed_request"
    TRANSIENT = "transient"


class ProviderError(Exception):
    """Base exception for provider errors.

    Attributes:
        kind: Classification used by the fallback policy
        provider: The provider that raised the error
        model: Model the request was addressed to (if known)
        status_code: HTTP status code (if applicable)
    """

    kind: ProviderErrorKind = ProviderErrorKind.TRANSIENT

    def __init__(
        self,
        message: str,
        provider: ProviderType,
        status_code: int | None = None,
        model: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.model = model

    @property
    def retryable(self) -> bool:
        """Whether another candidate model may succeed where this one failed."""
        return self.kind in (ProviderErrorKind.RATE_LIMITED, ProviderErrorKind.MODEL_REJECTED)

    def __str__(self) -> str:
        parts = [f"[{self.provider.value}]", self.args[0]]
        if self.status_code:
            parts.insert(1, f"({self.status_code})")
        return " ".join(parts)


class RateLimitError(ProviderError):
    """Rate limit exceeded for a model."""

    kind = ProviderErrorKind.RATE_LIMITED

    def __init__(
        self,
        provider: ProviderType,
        retry_after: int | None = None,
        model: str | None = None,
    ) -> None:
        message = "Rate limit exceeded"
        if retry_after:
            message += f", retry after {retry_after}s"
        super().__init__(message, provider, status_code=429, model=model)
        self.retry_after = retry_after


class ModelRejectedError(ProviderError):
    """The provider does not know or will not serve the requested model."""

    kind = ProviderErrorKind.MODEL_REJECTED


class AuthenticationError(ProviderError):
    """Authentication or account configuration failure."""

    kind = ProviderErrorKind.AUTHENTICATION

    def __init__(
        self,
        provider: ProviderType,
        message: str = "Authentication failed - check API key",
        status_code: int | None = 401,
        model: str | None = None,
    ) -> None:
        super().__init__(message, provider, status_code=status_code, model=model)


class MalformedRequestError(ProviderError):
    """The provider rejected the request body."""

    kind = ProviderErrorKind.MALFORMED_REQUEST


class ProviderTransientError(ProviderError):
    """Network failure, upstream 5xx, or a stream that broke off."""

    kind = ProviderErrorKind.TRANSIENT
