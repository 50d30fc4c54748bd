"""Application configuration with Pydantic Settings.

This module provides centralized configuration management using pydantic-settings.
Settings are loaded from environment variables and .env files.

Examples:
    >>> from app.config import get_settings
    >>> get_settings().OPENROUTER_CHAT_MODEL
    'google/gemini-2.0-flash-exp:free'

Tests:
    - tests/unit/test_config.py::TestSettings
"""

from enum import Enum
from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported LLM providers."""

    OPENROUTER = "openrouter"


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


# Models offered in the model picker. Order is display order.
# supports_image_input mirrors what OpenRouter reports for the model's input modalities.
DEFAULT_MODEL_CATALOG: list[dict[str, Any]] = [
    {
        "id": "google/gemini-2.0-flash-exp:free",
        "display_name": "Gemini Flash (Free)",
        "provider": "Google",
        "description": "Fast, free responses. Great for quick questions.",
        "pricing": "free",
        "supports_image_input": True,
    },
    {
        "id": "meta-llama/llama-3.2-3b-instruct:free",
        "display_name": "Llama 3.2 (Free)",
        "provider": "Meta",
        "description": "Open-source model, good for general learning.",
        "pricing": "free",
        "supports_image_input": False,
    },
    {
        "id": "openai/gpt-3.5-turbo",
        "display_name": "GPT-3.5 Turbo",
        "provider": "OpenAI",
        "description": "Balanced quality and speed. Good all-rounder.",
        "pricing": "low",
        "supports_image_input": False,
    },
    {
        "id": "openai/gpt-4-turbo",
        "display_name": "GPT-4 Turbo",
        "provider": "OpenAI",
        "description": "Advanced reasoning, best for complex topics.",
        "pricing": "medium",
        "supports_image_input": True,
    },
    {
        "id": "anthropic/claude-3.5-sonnet",
        "display_name": "Claude 3.5 Sonnet",
        "provider": "Anthropic",
        "description": "Excellent for detailed explanations and writing.",
        "pricing": "medium",
        "supports_image_input": True,
    },
    {
        "id": "google/gemini-pro-1.5",
        "display_name": "Gemini Pro",
        "provider": "Google",
        "description": "Premium Gemini with advanced capabilities.",
        "pricing": "low",
        "supports_image_input": True,
    },
    {
        "id": "nousresearch/hermes-3-llama-3.1-405b:free",
        "display_name": "Hermes 3 405B (Free)",
        "provider": "Nous Research",
        "description": "Large open model, slower but thorough.",
        "pricing": "free",
        "supports_image_input": False,
    },
    {
        "id": "meta-llama/llama-3.2-90b-vision-instruct:free",
        "display_name": "Llama 3.2 Vision (Free)",
        "provider": "Meta",
        "description": "Open-source model that can read images.",
        "pricing": "free",
        "supports_image_input": True,
    },
]


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables and .env file.
    OPENROUTER_API_KEY is optional at startup; requests made without it
    fail with an authentication error from the provider layer.

    Attributes:
        DATABASE_URL: Database connection string (SQLite or PostgreSQL)
        OPENROUTER_API_KEY: OpenRouter API key
        OPENROUTER_CHAT_MODEL: Default model for tutor conversations
        OPENROUTER_GENERATION_MODEL: Default model for titles, flashcards and quizzes
        FALLBACK_MODELS: Text-only fallback chain
        VISION_FALLBACK_MODELS: Image-capable fallback chain
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./roomtogrow.db",
        description="Database connection string",
    )

    # Provider
    OPENROUTER_API_KEY: str | None = Field(
        default=None,
        description="OpenRouter API key",
    )
    OPENROUTER_BASE_URL: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenRouter API base URL",
    )
    OPENROUTER_TIMEOUT: float = Field(
        default=60.0,
        gt=0,
        description="Request timeout in seconds",
    )

    # Model Selection
    OPENROUTER_CHAT_MODEL: str = Field(
        default="google/gemini-2.0-flash-exp:free",
        description="Default model for tutor chat",
    )
    OPENROUTER_GENERATION_MODEL: str = Field(
        default="google/gemini-2.0-flash-exp:free",
        description="Default model for titles, flashcards and quizzes",
    )
    FALLBACK_MODELS: list[str] = Field(
        default=[
            "google/gemini-2.0-flash-exp:free",
            "meta-llama/llama-3.2-3b-instruct:free",
            "nousresearch/hermes-3-llama-3.1-405b:free",
        ],
        description="Fallback chain for text-only requests",
    )
    VISION_FALLBACK_MODELS: list[str] = Field(
        default=[
            "google/gemini-2.0-flash-exp:free",
            "meta-llama/llama-3.2-90b-vision-instruct:free",
            "openai/gpt-4-turbo",
            "anthropic/claude-3.5-sonnet",
        ],
        description="Fallback chain for requests carrying an image",
    )
    CHAT_TEMPERATURE: float = Field(default=0.7, ge=0.0, le=2.0)
    GENERATION_TEMPERATURE: float = Field(default=0.5, ge=0.0, le=2.0)

    # Uploads
    MAX_IMAGE_BYTES: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Maximum accepted image upload size",
    )

    # Sessions
    JWT_SECRET_KEY: str = Field(
        default="dev-secret-change-me",
        description="HS256 signing key for session tokens",
    )
    JWT_ACCESS_EXPIRE_MINUTES: int = Field(
        default=60 * 24 * 7,
        description="Session token lifetime",
    )
    SESSION_COOKIE_NAME: str = Field(
        default="rtg_session",
        description="Cookie carrying the session token",
    )
    ADMIN_API_KEY: str = Field(
        default="",
        description="Key the sign-in frontend presents to open sessions (empty disables)",
    )

    # Application Settings
    ENVIRONMENT: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    DEBUG: bool = Field(
        default=True,
        description="Enable debug mode",
    )
    CORS_ORIGINS: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL format."""
        valid_prefixes = ("sqlite", "postgresql", "postgres")
        if not any(v.startswith(prefix) for prefix in valid_prefixes):
            raise ValueError(
                f"DATABASE_URL must start with one of: {valid_prefixes}"
            )
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == Environment.PRODUCTION

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.DATABASE_URL.startswith("sqlite")

    def has_provider(self, provider: ProviderType) -> bool:
        """Check if a specific provider is configured.

        Args:
            provider: The provider to check.

        Returns:
            bool: True if the provider's API key is configured.
        """
        if provider == ProviderType.OPENROUTER:
            return bool(self.OPENROUTER_API_KEY)
        return False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: The application settings.
    """
    return Settings()
