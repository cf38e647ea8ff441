"""FastAPI API endpoints under /api.

Endpoint groups: health + modes, and the single dialog session
(start, messages, reset, quest export).
"""

from fastapi import APIRouter

from .session import router as session_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(session_router)
