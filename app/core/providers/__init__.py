"""LLM provider abstraction and implementations.

Re-exports base classes and provider implementations for convenient imports.
"""

from app.core.providers.base import (
    AuthenticationError,
    ImageAttachment,
    LLMProvider,
    LLMResponse,
    MalformedRequestError,
    ModelRejectedError,
    PromptMessage,
    ProviderError,
    ProviderErrorKind,
    ProviderTransientError,
    ProviderType,
    RateLimitError,
)
from app.core.providers.openrouter import OpenRouterProvider, classify_error

__all__ = [
    # Base classes
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
    # Implementations
    "OpenRouterProvider",
    "classify_error",
]
