import asyncio
from collections.abc import Sequence

import pytest

from quest_generator.models import Message


class StubLLM:
    """Scripted Dialog Engine: returns canned replies in order and records calls.

    An Exception instance in the script is raised instead of returned.
    With gated=True every call waits for release() before answering.
    """

    def __init__(self, replies: Sequence[str | Exception] = (), gated: bool = False):
        self.replies = list(replies)
        self.calls: list[dict] = []
        self._gate = asyncio.Event() if gated else None

    def release(self) -> None:
        assert self._gate is not None
        self._gate.set()

    async def __call__(self, stage: str, instructions: str, history: Sequence[Message]) -> str:
        self.calls.append({
            "stage": stage,
            "instructions": instructions,
            "history": list(history),
        })
        if self._gate is not None:
            await self._gate.wait()
        reply = self.replies.pop(0) if self.replies else "OK"
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def stub_llm():
    """Factory: stub_llm(["reply 1", DialogFailure("x"), ...], gated=False)."""
    return StubLLM


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep QUESTGEN_* settings from the developer's shell out of tests."""
    for key in (
        "QUESTGEN_PROVIDER_URL", "QUESTGEN_PROVIDER_FORMAT", "QUESTGEN_API_KEY",
        "QUESTGEN_MODEL", "QUESTGEN_TIMEOUT", "QUESTGEN_REPLY_TIMEOUT",
        "QUESTGEN_PLAYER_NAME", "QUESTGEN_PROFILE", "QUESTGEN_PROFILE_FILE",
    ):
        monkeypatch.delenv(key, raising=False)
    yield
