"""Service wiring for the v1 routes.

Each collaborator is a FastAPI dependency so tests can replace it through
``app.dependency_overrides``. The provider is shared for the life of the
process; everything else is cheap and built per request.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from app.agents.study_artifacts import ArtifactGenerator
from app.agents.titles import TitleSynthesizer
from app.config import Settings, get_settings
from app.core.catalog import ModelCatalog, get_model_catalog
from app.core.fallback import FallbackRunner
from app.core.providers import LLMProvider, OpenRouterProvider
from app.core.relay import ConversationRelay
from app.services.conversations import ConversationStore


@lru_cache
def get_provider() -> LLMProvider:
    """Process-wide OpenRouter provider."""
    settings = get_settings()
    return OpenRouterProvider(
        api_key=settings.OPENROUTER_API_KEY,
        base_url=settings.OPENROUTER_BASE_URL,
        timeout=settings.OPENROUTER_TIMEOUT,
    )


def get_catalog() -> ModelCatalog:
    return get_model_catalog()


def get_runner(
    provider: LLMProvider = Depends(get_provider),
    catalog: ModelCatalog = Depends(get_catalog),
) -> FallbackRunner:
    return FallbackRunner(provider, catalog)


def get_store() -> ConversationStore:
    return ConversationStore()


def get_title_synthesizer(
    runner: FallbackRunner = Depends(get_runner),
    settings: Settings = Depends(get_settings),
) -> TitleSynthesizer:
    return TitleSynthesizer(
        runner,
        default_model=settings.OPENROUTER_GENERATION_MODEL,
        temperature=settings.GENERATION_TEMPERATURE,
    )


def get_relay(
    runner: FallbackRunner = Depends(get_runner),
    store: ConversationStore = Depends(get_store),
    titles: TitleSynthesizer = Depends(get_title_synthesizer),
    settings: Settings = Depends(get_settings),
) -> ConversationRelay:
    return ConversationRelay(
        runner,
        store,
        titles,
        temperature=settings.CHAT_TEMPERATURE,
    )


def get_artifact_generator(
    runner: FallbackRunner = Depends(get_runner),
    store: ConversationStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> ArtifactGenerator:
    return ArtifactGenerator(
        runner,
        store,
        default_model=settings.OPENROUTER_GENERATION_MODEL,
        temperature=settings.GENERATION_TEMPERATURE,
    )
