"""Model catalog and candidate selection.

The catalog is immutable configuration built once from settings. It
answers one question for the fallback policy: given the model a caller
asked for and whether the request carries an image, which models should be
tried, in which order.

Examples:
    >>> catalog = get_model_catalog()
    >>> catalog.select_candidates("openai/gpt-4-turbo", requires_image=False)
    ['openai/gpt-4-turbo', 'google/gemini-2.0-flash-exp:free', ...]

Tests:
    - tests/unit/test_catalog.py
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.config import DEFAULT_MODEL_CATALOG, Settings, get_settings


class ModelCandidate(BaseModel):
    """A remote model eligible to serve a request."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    provider: str
    supports_image_input: bool = False
    description: str = ""
    pricing: Literal["free", "low", "medium", "high"] = "free"


class ModelCatalog(BaseModel):
    """Known models plus the two fixed fallback chains.

    Attributes:
        models: Models offered to clients, in display order
        default_model: Model used when a request names none (or an unknown one)
        text_fallbacks: Ordered chain for text-only requests
        vision_fallbacks: Ordered chain for requests with an image
    """

    model_config = ConfigDict(frozen=True)

    models: tuple[ModelCandidate, ...] = Field(default_factory=tuple)
    default_model: str
    text_fallbacks: tuple[str, ...] = Field(default_factory=tuple)
    vision_fallbacks: tuple[str, ...] = Field(default_factory=tuple)

    def get(self, model_id: str) -> ModelCandidate | None:
        """Look up a catalog entry by id."""
        for candidate in self.models:
            if candidate.id == model_id:
                return candidate
        return None

    def supports(self, model_id: str, requires_image: bool) -> bool:
        """Whether model_id belongs to the catalog appropriate for the request.

        Text requests accept any listed model or text fallback. Image
        requests accept the vision chain and listed models flagged as
        image-capable.
        """
        if requires_image:
            if model_id in self.vision_fallbacks:
                return True
            candidate = self.get(model_id)
            return candidate is not None and candidate.supports_image_input
        return self.get(model_id) is not None or model_id in self.text_fallbacks

    def fallback_chain(self, requires_image: bool) -> tuple[str, ...]:
        return self.vision_fallbacks if requires_image else self.text_fallbacks

    def select_candidates(
        self,
        requested_model_id: str | None,
        requires_image: bool,
        default_model_id: str | None = None,
    ) -> list[str]:
        """Order the models to try for one request.

        The requested model comes first when the appropriate catalog knows
        it; otherwise the default model does (if it can serve the request).
        The fixed chain for the request type follows. Duplicates are dropped,
        keeping the first occurrence.

        Args:
            requested_model_id: Model the caller asked for, if any.
            requires_image: Whether the request carries an image.
            default_model_id: Overrides the catalog default (e.g. the
                generation model for titles and artifacts).

        Returns:
            Ordered, de-duplicated model ids. May be empty when nothing is
            configured.
        """
        default = default_model_id or self.default_model
        head: list[str] = []

        if requested_model_id and self.supports(requested_model_id, requires_image):
            head.append(requested_model_id)
        elif default and (not requires_image or self.supports(default, True)):
            head.append(default)

        ordered: list[str] = []
        for model_id in [*head, *self.fallback_chain(requires_image)]:
            if model_id and model_id not in ordered:
                ordered.append(model_id)
        return ordered


def build_model_catalog(settings: Settings) -> ModelCatalog:
    """Build the catalog from settings and the built-in model list."""
    return ModelCatalog(
        models=tuple(ModelCandidate(**entry) for entry in DEFAULT_MODEL_CATALOG),
        default_model=settings.OPENROUTER_CHAT_MODEL,
        text_fallbacks=tuple(settings.FALLBACK_MODELS),
        vision_fallbacks=tuple(settings.VISION_FALLBACK_MODELS),
    )


@lru_cache
def get_model_catalog() -> ModelCatalog:
    """Process-wide catalog built from get_settings()."""
    return build_model_catalog(get_settings())
