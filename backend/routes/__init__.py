"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, settings) and preview (document
previews, state, outline, navigation, and the display-surface WebSocket at
/api/preview/ws).
"""

from fastapi import APIRouter

from .preview import router as preview_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(preview_router)
