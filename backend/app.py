import logging

from fastapi import FastAPI

from backend.routes import router
from quest_generator.config import Settings, build_llm, load_settings
from quest_generator.llm import LLM
from quest_generator.pipeline import SessionManager

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, llm: LLM | None = None) -> FastAPI:
    resolved = settings or load_settings()
    if llm is None:
        llm = build_llm(resolved)
        logger.info(
            "Using %s backend at %s (model=%s)",
            resolved.provider_format, resolved.provider_url, resolved.model,
        )

    app = FastAPI(title="Quest Generator")
    app.state.session = SessionManager(
        llm,
        profile=resolved.profile,
        player_name=resolved.player_name,
        reply_timeout=resolved.reply_timeout,
    )
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (settings from the environment)
app = create_app()
