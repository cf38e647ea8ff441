"""Health check and mode listing endpoints."""

from fastapi import APIRouter

from quest_generator.prompts import MODE_TEMPLATES

from .models import ModeInfo

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/modes")
async def list_modes() -> list[ModeInfo]:
    """The two session entry points with their picker labels."""
    return [
        ModeInfo(mode=mode, title=t.title, blurb=t.blurb)
        for mode, t in MODE_TEMPLATES.items()
    ]
