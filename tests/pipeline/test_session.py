"""Session manager flow tests with a scripted Dialog Engine.

Each test drives start/submit/reset against canned replies and checks the
conversation, phase, quest list and the calls the Dialog Engine received.
"""

import asyncio
import json

import pytest

from quest_generator.llm import DialogFailure
from quest_generator.models import Message
from quest_generator.pipeline import (
    FALLBACK_REPLY,
    InvalidInputError,
    NoSessionError,
    SessionBusyError,
    SessionManager,
)
from quest_generator.pipeline.session import Awaiting, Ready, Uninitialized
from quest_generator.prompts import mode_prompts

QUESTION = "How did you sleep? What is planned for today?"


def _quests_reply(*records) -> str:
    return "Here is your plan!\n```json\n" + json.dumps(list(records)) + "\n```"


def _record(name: str = "Run", rank: str = "D", **extra) -> dict:
    return {"name": name, "description": f"{name} today", "rank": rank,
            "stats": ["STA"], "is_daily": False} | extra


# ── start ────────────────────────────────────────────────


async def test_start_appends_greeting_and_reply(stub_llm):
    llm = stub_llm([QUESTION])
    session = SessionManager(llm, player_name="Roma")

    reply = await session.start("day")

    assert reply == Message(role="assistant", content=QUESTION)
    snap = session.snapshot()
    assert snap.mode == "day"
    assert snap.phase == "questions"
    assert snap.pending is False
    assert snap.quests is None
    greeting = mode_prompts("day", player_name="Roma").greeting
    assert snap.conversation == [
        Message(role="user", content=greeting),
        Message(role="assistant", content=QUESTION),
    ]


async def test_start_sends_mode_instructions_and_greeting_only(stub_llm):
    llm = stub_llm([QUESTION])
    session = SessionManager(llm, profile="Go developer")

    await session.start("week")

    assert len(llm.calls) == 1
    call = llm.calls[0]
    expected = mode_prompts("week", profile="Go developer")
    assert call["stage"] == "opening"
    assert call["instructions"] == expected.instructions
    assert call["history"] == [Message(role="user", content=expected.greeting)]


async def test_day_and_week_greetings_differ(stub_llm):
    session = SessionManager(stub_llm([QUESTION, QUESTION]))
    await session.start("day")
    day_greeting = session.snapshot().conversation[0].content
    await session.start("week")
    week_greeting = session.snapshot().conversation[0].content
    assert day_greeting != week_greeting


async def test_start_unknown_mode_leaves_state_untouched(stub_llm):
    session = SessionManager(stub_llm([QUESTION]))
    await session.start("day")
    before = session.snapshot()
    with pytest.raises(ValueError):
        await session.start("month")
    assert session.snapshot() == before


async def test_start_on_active_session_restarts(stub_llm):
    session = SessionManager(stub_llm([QUESTION, _quests_reply(_record()), "Fresh start?"]))
    await session.start("day")
    await session.submit("Slept well")
    assert session.snapshot().phase == "generated"

    await session.start("week")

    snap = session.snapshot()
    assert snap.mode == "week"
    assert snap.phase == "questions"
    assert snap.quests is None
    assert len(snap.conversation) == 2


async def test_opening_reply_with_quests_generates(stub_llm):
    session = SessionManager(stub_llm([_quests_reply(_record())]))
    await session.start("day")
    assert session.snapshot().phase == "generated"


# ── submit ───────────────────────────────────────────────


async def test_submit_sends_full_history_without_placeholder(stub_llm):
    llm = stub_llm([QUESTION, "One more: any deadlines?"])
    session = SessionManager(llm)
    await session.start("day")

    await session.submit("  Badly, and I have a lot of work  ")

    call = llm.calls[1]
    assert call["stage"] == "reply"
    assert [m.content for m in call["history"]] == [
        mode_prompts("day").greeting,
        QUESTION,
        "Badly, and I have a lot of work",
    ]
    assert not any(m.pending for m in call["history"])


async def test_instructions_stay_bound_to_mode(stub_llm):
    llm = stub_llm([QUESTION, "a", "b", "c"])
    session = SessionManager(llm)
    await session.start("week")
    for text in ("one", "two", "three"):
        await session.submit(text)

    week = mode_prompts("week").instructions
    assert [c["instructions"] for c in llm.calls] == [week] * 4
    assert session.instructions == week


async def test_conversation_is_append_only(stub_llm):
    session = SessionManager(stub_llm([QUESTION, "q2", _quests_reply(_record()), "tweaked"]))
    seen: list[Message] = []

    await session.start("day")
    for text in ("first", "second", "third"):
        before = session.snapshot().conversation
        assert before[: len(seen)] == seen
        seen = before
        await session.submit(text)
        after = session.snapshot().conversation
        assert after[: len(before)] == before
        assert len(after) == len(before) + 2
        assert after[-2] == Message(role="user", content=text)
        assert after[-1].role == "assistant"


async def test_extraction_advances_phase_and_sets_quests(stub_llm):
    session = SessionManager(stub_llm([QUESTION, _quests_reply(_record("Run"), _record("Read", "C"))]))
    await session.start("day")

    await session.submit("Slept fine, free evening")

    snap = session.snapshot()
    assert snap.phase == "generated"
    assert [q.name for q in snap.quests] == ["Run", "Read"]
    assert snap.total_exp == 40 + 70
    assert snap.failures == []


async def test_quests_replaced_wholesale(stub_llm):
    session = SessionManager(stub_llm([
        QUESTION,
        _quests_reply(_record("Run"), _record("Read")),
        _quests_reply(_record("Swim", "B")),
    ]))
    await session.start("day")
    await session.submit("ok")
    await session.submit("swap them for swimming")

    snap = session.snapshot()
    assert snap.phase == "generated"
    assert [q.name for q in snap.quests] == ["Swim"]


async def test_reply_without_block_keeps_quests(stub_llm):
    session = SessionManager(stub_llm([QUESTION, _quests_reply(_record()), "Glad you like it!"]))
    await session.start("day")
    await session.submit("ok")
    await session.submit("thanks")

    snap = session.snapshot()
    assert snap.phase == "generated"
    assert [q.name for q in snap.quests] == ["Run"]


async def test_question_replies_stay_in_questions_phase(stub_llm):
    session = SessionManager(stub_llm([QUESTION, "Broken block:\n```json\n[{oops\n```"]))
    await session.start("day")
    await session.submit("hmm")

    snap = session.snapshot()
    assert snap.phase == "questions"
    assert snap.quests is None


async def test_malformed_records_surface_as_failures(stub_llm):
    session = SessionManager(stub_llm([QUESTION, _quests_reply(_record("Run"), _record("Fly", "Z"))]))
    await session.start("day")
    await session.submit("go")

    snap = session.snapshot()
    assert snap.phase == "generated"
    assert [q.name for q in snap.quests] == ["Run"]
    assert len(snap.failures) == 1
    assert snap.failures[0].index == 1
    assert snap.failures[0].record["rank"] == "Z"


async def test_all_records_invalid_keeps_phase(stub_llm):
    session = SessionManager(stub_llm([QUESTION, _quests_reply(_record("Fly", "Z"))]))
    await session.start("day")
    await session.submit("go")

    snap = session.snapshot()
    assert snap.phase == "questions"
    assert snap.quests is None
    assert len(snap.failures) == 1


async def test_raw_reply_stored_with_block(stub_llm):
    raw = _quests_reply(_record())
    session = SessionManager(stub_llm([QUESTION, raw]))
    await session.start("day")
    await session.submit("go")
    assert session.snapshot().conversation[-1].content == raw


# ── submit rejections ────────────────────────────────────


async def test_submit_without_session_rejected(stub_llm):
    session = SessionManager(stub_llm())
    with pytest.raises(NoSessionError):
        await session.submit("hello")
    assert session.snapshot().conversation == []


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
async def test_blank_submit_rejected(stub_llm, text):
    llm = stub_llm([QUESTION])
    session = SessionManager(llm)
    await session.start("day")
    before = session.snapshot()

    with pytest.raises(InvalidInputError):
        await session.submit(text)

    assert session.snapshot() == before
    assert len(llm.calls) == 1


async def test_submit_while_pending_rejected(stub_llm):
    llm = stub_llm([QUESTION], gated=True)
    session = SessionManager(llm)

    task = asyncio.create_task(session.start("day"))
    await asyncio.sleep(0)

    snap = session.snapshot()
    assert snap.pending is True
    assert isinstance(session.state, Awaiting)
    assert snap.conversation[-1].pending is True

    with pytest.raises(SessionBusyError):
        await session.submit("impatient")
    assert session.snapshot().conversation == snap.conversation
    assert len(llm.calls) == 1

    llm.release()
    await task
    assert isinstance(session.state, Ready)
    assert session.snapshot().conversation[-1] == Message(role="assistant", content=QUESTION)


# ── dialog failures ──────────────────────────────────────


async def test_dialog_failure_replaced_by_fallback(stub_llm):
    session = SessionManager(stub_llm([DialogFailure("LLM backend returned HTTP 529")]))

    reply = await session.start("day")

    assert reply.content == FALLBACK_REPLY
    snap = session.snapshot()
    assert snap.pending is False
    assert snap.phase == "questions"
    assert snap.conversation[-1] == Message(role="assistant", content=FALLBACK_REPLY)


async def test_session_usable_after_failure(stub_llm):
    session = SessionManager(stub_llm([QUESTION, DialogFailure("down"), _quests_reply(_record())]))
    await session.start("day")
    await session.submit("first try")
    await session.submit("second try")

    snap = session.snapshot()
    assert snap.phase == "generated"
    assert [m.content for m in snap.conversation][2:5] == ["first try", FALLBACK_REPLY, "second try"]


async def test_unexpected_exception_degrades_to_fallback(stub_llm):
    session = SessionManager(stub_llm([KeyError("content")]))
    reply = await session.start("day")
    assert reply.content == FALLBACK_REPLY
    assert isinstance(session.state, Ready)


async def test_reply_timeout_falls_back(stub_llm):
    llm = stub_llm([QUESTION], gated=True)
    session = SessionManager(llm, reply_timeout=0.01)

    reply = await session.start("day")

    assert reply.content == FALLBACK_REPLY
    assert session.snapshot().pending is False


# ── reset ────────────────────────────────────────────────


async def test_reset_restores_initial_state(stub_llm):
    session = SessionManager(stub_llm([QUESTION, _quests_reply(_record(), _record("Bad", "Z"))]))
    initial = session.snapshot()

    await session.start("week")
    await session.submit("plans")
    session.reset()

    assert session.snapshot() == initial
    assert isinstance(session.state, Uninitialized)
    assert session.instructions is None


def test_reset_is_idempotent(stub_llm):
    session = SessionManager(stub_llm())
    initial = session.snapshot()
    session.reset()
    session.reset()
    assert session.snapshot() == initial
    assert initial.mode is None and initial.phase is None
    assert initial.quests is None and initial.conversation == []


async def test_reply_after_reset_is_discarded(stub_llm):
    llm = stub_llm([_quests_reply(_record())], gated=True)
    session = SessionManager(llm)
    initial = session.snapshot()

    task = asyncio.create_task(session.start("day"))
    await asyncio.sleep(0)
    session.reset()
    llm.release()
    await task

    assert session.snapshot() == initial


async def test_reply_for_superseded_session_is_discarded(stub_llm):
    llm = stub_llm([_quests_reply(_record("Stale")), QUESTION], gated=True)
    session = SessionManager(llm)

    first = asyncio.create_task(session.start("day"))
    await asyncio.sleep(0)
    second = asyncio.create_task(session.start("week"))
    await asyncio.sleep(0)
    llm.release()
    await asyncio.gather(first, second)

    snap = session.snapshot()
    assert snap.mode == "week"
    assert snap.phase == "questions"
    assert snap.quests is None
    assert [m.content for m in snap.conversation] == [mode_prompts("week").greeting, QUESTION]
