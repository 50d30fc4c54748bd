"""API v1 module.

Contains all v1 API routes.
"""

from fastapi import APIRouter

from app.api.v1.auth import router as auth_router
from app.api.v1.chat import router as chat_router
from app.api.v1.models import router as models_router

router = APIRouter(prefix="/api/v1")
router.include_router(chat_router)
router.include_router(models_router)
router.include_router(auth_router)

__all__ = ["router"]
