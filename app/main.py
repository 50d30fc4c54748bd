"""FastAPI application for Room To Grow.

This module provides the main FastAPI application with health endpoints,
API routes, error mapping and lifecycle management.

Run with:
    uvicorn app.main:app --reload

Examples:
    >>> # Health check
    >>> curl http://localhost:8000/health

    >>> # API docs
    >>> # Open http://localhost:8000/docs

Tests:
    - tests/unit/test_main.py
    - tests/integration/test_api_chat.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app import __version__
from app.api.v1 import router as v1_router
from app.api.v1.dependencies import get_provider
from app.config import ProviderType, Settings, get_settings
from app.core.errors import RelayError
from app.core.providers import AuthenticationError, LLMProvider, ProviderError
from app.database import check_db_connection, close_db, init_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Response models
class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: bool
    providers: dict[str, bool]


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str
    detail: str | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown tasks:
    - Initialize database on startup
    - Close provider and database connections on shutdown
    """
    # Startup
    logger.info(f"Starting Room To Grow v{__version__}")

    try:
        await init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        # Continue anyway - might be using external DB

    yield

    # Shutdown
    logger.info("Shutting down Room To Grow")
    await get_provider().close()
    await close_db()


# Create FastAPI app
settings = get_settings()

app = FastAPI(
    title="Room To Grow",
    description="AI tutor with streaming chat, flashcards and quizzes",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API v1 routes
app.include_router(v1_router)


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent response format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "detail": None},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RelayError)
async def relay_exception_handler(request: Request, exc: RelayError):
    """Validation, exhaustion, store and artifact parse failures."""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc), "detail": exc.__class__.__name__},
    )


@app.exception_handler(ProviderError)
async def provider_exception_handler(request: Request, exc: ProviderError):
    """Non-retryable provider failures surface as a bad gateway."""
    logger.error(f"Provider failure ({exc.kind.value}): {exc}")
    if isinstance(exc, AuthenticationError):
        message = "The AI provider rejected our credentials; check the server configuration"
    else:
        message = "The AI provider could not complete the request"
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": message, "detail": str(exc) if settings.DEBUG else exc.kind.value},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")

    if settings.DEBUG:
        detail = str(exc)
    else:
        detail = None

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "detail": detail},
    )


# Health endpoints
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(
    deep: bool = Query(default=False, description="Also contact the model provider"),
    provider: LLMProvider = Depends(get_provider),
    app_settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """Check application health.

    Returns status of:
    - Application
    - Database connection
    - LLM provider configuration (reachability too when ``deep`` is set)

    Returns:
        HealthResponse with status information.
    """
    db_healthy = await check_db_connection()

    # Basic check - just if configured
    configured = app_settings.has_provider(ProviderType.OPENROUTER)
    if deep and configured:
        configured = await provider.health_check()
    providers = {ProviderType.OPENROUTER.value: configured}

    return HealthResponse(
        status="healthy" if db_healthy else "degraded",
        version=__version__,
        database=db_healthy,
        providers=providers,
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with basic info.

    Returns:
        Basic application information.
    """
    return {
        "name": "Room To Grow",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# Entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
