"""
Pytest configuration and fixtures for Room To Grow tests.

Every test gets a fresh in-memory SQLite database and a scripted model
provider; nothing touches the network.
"""
import logging
import os
from collections.abc import AsyncIterator

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Test environment, set before app modules read settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("DEBUG", "true")

from app.agents.study_artifacts import ArtifactGenerator
from app.agents.titles import TitleSynthesizer
from app.api.v1.dependencies import get_catalog, get_provider, get_store
from app.auth.github import upsert_github_user
from app.auth.jwt_handler import create_access_token
from app.auth.schemas import GitHubProfile
from app.config import Settings, get_settings
from app.core.catalog import ModelCandidate, ModelCatalog
from app.core.fallback import FallbackRunner
from app.core.relay import ConversationRelay
from app.database import _enable_sqlite_pragmas, get_db_session, init_db, session_scope
from app.models_auth import User
from app.services.conversations import ConversationStore
from tests.utils.test_helpers import ScriptedProvider

logger = logging.getLogger(__name__)

GENERATION_MODEL = "test/gen"


# ============================================
# Database fixtures
# ============================================

@pytest.fixture
async def db_engine():
    """Fresh in-memory database with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_sqlite_pragmas(engine)
    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def store(session_factory) -> ConversationStore:
    return ConversationStore(session_factory)


async def _make_user(session_factory, github_id: int, login: str) -> User:
    async with session_scope(session_factory) as session:
        user = await upsert_github_user(
            session,
            GitHubProfile(id=github_id, login=login, name=login.title()),
        )
    return user


@pytest.fixture
async def user(session_factory) -> User:
    return await _make_user(session_factory, 1001, "ada")


@pytest.fixture
async def other_user(session_factory) -> User:
    return await _make_user(session_factory, 2002, "grace")


@pytest.fixture
def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


# ============================================
# Model fixtures
# ============================================

@pytest.fixture
def catalog() -> ModelCatalog:
    return ModelCatalog(
        models=(
            ModelCandidate(id="test/text-a", display_name="Text A", provider="Test"),
            ModelCandidate(id="test/text-b", display_name="Text B", provider="Test"),
            ModelCandidate(
                id="test/vision-a",
                display_name="Vision A",
                provider="Test",
                supports_image_input=True,
            ),
        ),
        default_model="test/text-a",
        text_fallbacks=("test/text-a", "test/text-b"),
        vision_fallbacks=("test/vision-a", "test/vision-b"),
    )


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider(
        default_stream=["Hello", ", ", "student"],
        default_completion="Tutor reply",
        completions={GENERATION_MODEL: "Photosynthesis Basics"},
    )


@pytest.fixture
def runner(provider, catalog) -> FallbackRunner:
    return FallbackRunner(provider, catalog)


@pytest.fixture
def titles(runner) -> TitleSynthesizer:
    return TitleSynthesizer(runner, default_model=GENERATION_MODEL)


@pytest.fixture
def relay(runner, store, titles) -> ConversationRelay:
    return ConversationRelay(runner, store, titles)


@pytest.fixture
def generator(runner, store) -> ArtifactGenerator:
    return ArtifactGenerator(runner, store, default_model=GENERATION_MODEL)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        OPENROUTER_API_KEY="test-key",
        OPENROUTER_GENERATION_MODEL=GENERATION_MODEL,
        MAX_IMAGE_BYTES=1024,
    )


# ============================================
# Environment overrides
# ============================================

@pytest.fixture
def env(monkeypatch):
    """Set environment variables and rebuild the cached settings."""

    def _set(**values: str) -> Settings:
        for key, value in values.items():
            monkeypatch.setenv(key, value)
        get_settings.cache_clear()
        return get_settings()

    yield _set
    get_settings.cache_clear()


# ============================================
# API client
# ============================================

@pytest.fixture
async def test_client(session_factory, provider, catalog, store, test_settings) -> AsyncIterator[httpx.AsyncClient]:
    """HTTP client bound to the app, with database and provider replaced."""
    from app.main import app

    async def override_db_session():
        async with session_scope(session_factory) as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_provider] = lambda: provider
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: test_settings

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================
# Pytest Configuration
# ============================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "fast: Fast unit tests (no external API calls)"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end integration tests (requires API keys)"
    )
    config.addinivalue_line(
        "markers", "slow: Slow tests (long-running operations)"
    )
