"""Single-session dialog endpoints: start, answer, reset, export."""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from quest_generator.export import dump_quests
from quest_generator.pipeline import (
    InvalidInputError,
    SessionError,
    SessionManager,
)

from .models import MessageBody, SessionView, StartBody

router = APIRouter()


def get_session(request: Request) -> SessionManager:
    return request.app.state.session


@router.get("/session")
async def get_session_view(session: SessionManager = Depends(get_session)) -> SessionView:
    """Current mode, phase, conversation and quests."""
    return SessionView.from_snapshot(session.snapshot())


@router.post("/session/start")
async def start_session(
    body: StartBody, session: SessionManager = Depends(get_session)
) -> SessionView:
    """Start (or restart) the session in a mode and wait for the opening reply."""
    await session.start(body.mode)
    return SessionView.from_snapshot(session.snapshot())


@router.post("/session/messages")
async def send_message(
    body: MessageBody, session: SessionManager = Depends(get_session)
) -> SessionView:
    """Answer the model and wait for its reply."""
    try:
        await session.submit(body.text)
    except InvalidInputError as e:
        raise HTTPException(400, str(e))
    except SessionError as e:
        raise HTTPException(409, str(e))
    return SessionView.from_snapshot(session.snapshot())


@router.post("/session/reset")
async def reset_session(session: SessionManager = Depends(get_session)) -> SessionView:
    """Drop the session and return to mode selection."""
    session.reset()
    return SessionView.from_snapshot(session.snapshot())


@router.get("/session/quests/export", response_class=PlainTextResponse)
async def export_quests(session: SessionManager = Depends(get_session)):
    """Current quest list as indented JSON text."""
    quests = session.snapshot().quests
    if quests is None:
        raise HTTPException(404, "No quests generated yet")
    return PlainTextResponse(dump_quests(quests), media_type="application/json")
