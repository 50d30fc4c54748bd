"""Core components for Room To Grow: providers, fallback policy and relay."""

from app.core.providers import (
    AuthenticationError,
    LLMProvider,
    LLMResponse,
    PromptMessage,
    ProviderError,
    ProviderType,
    RateLimitError,
)

__all__ = [
    "AuthenticationError",
    "LLMProvider",
    "LLMResponse",
    "PromptMessage",
    "ProviderError",
    "ProviderType",
    "RateLimitError",
]
