"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel

from quest_generator.models import Mode, Phase, Quest
from quest_generator.pipeline import SessionSnapshot, ValidationFailure, display_text


class StartBody(BaseModel):
    mode: Mode


class MessageBody(BaseModel):
    text: str


class MessageView(BaseModel):
    role: str
    content: str
    display: str
    pending: bool


class SessionView(BaseModel):
    mode: Mode | None
    phase: Phase | None
    pending: bool
    messages: list[MessageView]
    quests: list[Quest] | None
    failures: list[ValidationFailure]
    total_exp: int

    @classmethod
    def from_snapshot(cls, snap: SessionSnapshot) -> "SessionView":
        return cls(
            mode=snap.mode,
            phase=snap.phase,
            pending=snap.pending,
            messages=[
                MessageView(
                    role=m.role,
                    content=m.content,
                    display=display_text(m.content) if m.role == "assistant" else m.content,
                    pending=m.pending,
                )
                for m in snap.conversation
            ],
            quests=snap.quests,
            failures=snap.failures,
            total_exp=snap.total_exp,
        )


class ModeInfo(BaseModel):
    mode: Mode
    title: str
    blurb: str
