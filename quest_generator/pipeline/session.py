"""Session manager: the clarifying dialog and quest list state machine.

States (one tagged value, never independent flags):
  Uninitialized                  before start() and after reset()
  Ready(mode, phase)             active session, nothing in flight
  Awaiting(mode, phase, ticket)  a Dialog Engine call is in flight

Transitions:
  start(mode)   any → Awaiting(questions) → Ready      (implicit reset first)
  submit(text)  Ready → Awaiting → Ready               (rejected otherwise)
  reset()       any → Uninitialized                    (sync, idempotent)

Phase moves questions → generated only when a reply yields at least one
valid quest; the quest list is then replaced wholesale. A reply that
arrives after reset() or a new start() carries a stale ticket and is
dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Literal, Union

from pydantic import BaseModel

from quest_generator.llm import LLM, DialogFailure
from quest_generator.models import Message, Mode, Phase, Quest, placeholder
from quest_generator.prompts import ModePrompts, mode_prompts

from .extractors import ValidationFailure, extract

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Connection error, please try again."


class SessionError(Exception):
    """Raised when an operation is not allowed in the current state."""


class NoSessionError(SessionError):
    pass


class SessionBusyError(SessionError):
    pass


class InvalidInputError(SessionError):
    pass


# ── State ────────────────────────────────────────────────


class Uninitialized(BaseModel, frozen=True):
    kind: Literal["uninitialized"] = "uninitialized"


class Ready(BaseModel, frozen=True):
    kind: Literal["ready"] = "ready"
    mode: Mode
    phase: Phase


class Awaiting(BaseModel, frozen=True):
    kind: Literal["awaiting"] = "awaiting"
    mode: Mode
    phase: Phase
    ticket: int


SessionState = Union[Uninitialized, Ready, Awaiting]


class SessionSnapshot(BaseModel):
    """Read-only view of a session for callers and the HTTP layer."""

    mode: Mode | None
    phase: Phase | None
    pending: bool
    conversation: list[Message]
    quests: list[Quest] | None
    failures: list[ValidationFailure]
    total_exp: int


# ── Manager ──────────────────────────────────────────────


class SessionManager:
    """Owns the single active session.

    Args:
        llm:           Dialog Engine callable.
        profile:       Player profile text embedded in the instructions.
        player_name:   Optional name used in greetings.
        reply_timeout: Seconds to wait for a reply before falling back.
                       None waits indefinitely.
    """

    def __init__(
        self,
        llm: LLM,
        profile: str = "",
        player_name: str = "",
        reply_timeout: float | None = None,
    ) -> None:
        self._llm = llm
        self._profile = profile
        self._player_name = player_name
        self._reply_timeout = reply_timeout
        self._tickets = itertools.count(1)
        self._clear()

    def _clear(self) -> None:
        self._state: SessionState = Uninitialized()
        self._prompts: ModePrompts | None = None
        self._conversation: list[Message] = []
        self._quests: list[Quest] | None = None
        self._failures: list[ValidationFailure] = []

    # ── Read side ──

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def instructions(self) -> str | None:
        return self._prompts.instructions if self._prompts else None

    def snapshot(self) -> SessionSnapshot:
        state = self._state
        active = not isinstance(state, Uninitialized)
        quests = list(self._quests) if self._quests is not None else None
        return SessionSnapshot(
            mode=state.mode if active else None,
            phase=state.phase if active else None,
            pending=isinstance(state, Awaiting),
            conversation=list(self._conversation),
            quests=quests,
            failures=list(self._failures),
            total_exp=sum(q.exp for q in quests or []),
        )

    # ── Operations ──

    def reset(self) -> None:
        """Return to the pre-start state. Any reply still in flight is dropped."""
        if not isinstance(self._state, Uninitialized):
            logger.info("Session reset (mode=%s)", self._state.mode)
        self._clear()

    async def start(self, mode: Mode) -> Message:
        """Begin a session in `mode` and return the model's opening reply."""
        prompts = mode_prompts(mode, self._profile, self._player_name)
        self.reset()
        self._prompts = prompts
        logger.info("Session started (mode=%s)", mode)
        return await self._exchange(
            "opening", Message(role="user", content=prompts.greeting), phase="questions"
        )

    async def submit(self, text: str) -> Message:
        """Send a user answer and return the model's reply."""
        state = self._state
        if isinstance(state, Uninitialized):
            raise NoSessionError("No active session; start one first")
        if isinstance(state, Awaiting):
            raise SessionBusyError("A reply is still pending")
        if not text or not text.strip():
            raise InvalidInputError("Message must not be blank")
        return await self._exchange(
            "reply", Message(role="user", content=text.strip()), phase=state.phase
        )

    # ── Internals ──

    async def _exchange(self, stage: str, user_msg: Message, phase: Phase) -> Message:
        prompts = self._prompts
        assert prompts is not None
        ticket = next(self._tickets)

        self._conversation.append(user_msg)
        history = list(self._conversation)
        self._conversation.append(placeholder())
        self._state = Awaiting(mode=prompts.mode, phase=phase, ticket=ticket)

        reply: str | None = None
        try:
            reply = await self._call(stage, prompts.instructions, history)
        except DialogFailure as e:
            logger.warning("Dialog call failed (stage=%s): %s", stage, e)
        except asyncio.TimeoutError:
            logger.warning(
                "Dialog call timed out after %ss (stage=%s)", self._reply_timeout, stage
            )
        except Exception:
            logger.exception("Dialog call raised unexpectedly (stage=%s)", stage)

        return self._resolve(ticket, reply)

    async def _call(self, stage: str, instructions: str, history: list[Message]) -> str:
        call = self._llm(stage, instructions, history)
        if self._reply_timeout is None:
            return await call
        return await asyncio.wait_for(call, self._reply_timeout)

    def _resolve(self, ticket: int, reply: str | None) -> Message:
        content = reply if reply is not None else FALLBACK_REPLY
        message = Message(role="assistant", content=content)

        state = self._state
        if not isinstance(state, Awaiting) or state.ticket != ticket:
            logger.info("Discarding reply for superseded request #%d", ticket)
            return message

        self._conversation[-1] = message
        phase = state.phase

        extraction = extract(reply) if reply is not None else None
        if extraction is not None:
            self._failures = extraction.failures
            for failure in extraction.failures:
                logger.warning(
                    "Quest record #%d rejected: %s", failure.index, "; ".join(failure.errors)
                )
            if extraction.quests:
                self._quests = extraction.quests
                phase = "generated"
                logger.info("Extracted %d quests", len(extraction.quests))

        self._state = Ready(mode=state.mode, phase=phase)
        return message
