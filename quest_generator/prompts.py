"""Per-mode instruction and greeting templates, rendered with Handlebars.

Each mode (day, week) binds three things at session start:
  instructions system text sent with every Dialog Engine call
  greeting     the synthetic opening user message
  title/blurb  short labels for the mode picker

Templates see this context:
  profile      free-form text describing the player
  player_name  optional; greetings address the player by it
  stats        [{"code": "STR", "description": ...}, ...]
  ranks        [{"letter": "E", "label": ..., "exp": 20}, ...]
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pybars

from quest_generator.models import MODES, RANK_EXP, RANK_LABELS, RANKS, STATS, Mode

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

_GAME_RULES = """\
Player profile:
{{{profile}}}

Stats:
{{#each stats}}- {{code}} ({{{description}}})
{{/each}}
Ranks:
{{#each ranks}}- {{letter}} ({{label}}, {{exp}} EXP)
{{/each}}
A single quest may train several stats (give them as an array).
"""

_JSON_CONTRACT = """\
IMPORTANT: whenever you generate quests, ALWAYS end the message with a JSON block in exactly this format:
```json
[
  {
    "name": "Quest name",
    "description": "Concrete description of what to do",
    "rank": "D",
    "stats": ["STA"],
    "is_daily": false
  }
]
```
"""

DAY_INSTRUCTIONS = (
    "You are the quest generation system of a Solo Leveling style life RPG.\n\n"
    + _GAME_RULES
    + """
Your task:
1. First ask 2-3 clarifying questions about the player's day
2. Once answered, generate 4-6 quests for today in JSON
3. Take real circumstances into account (fatigue, time, goals)
4. Make quests concrete and achievable

"""
    + _JSON_CONTRACT
    + "\nBe a mentor: understanding but motivating."
)

WEEK_INSTRUCTIONS = (
    "You are the quest generation system of a Solo Leveling style life RPG. "
    "A new week is starting.\n\n"
    + _GAME_RULES
    + """
Your task:
1. Ask 4-5 questions about the past week and the plans for this one
2. Once answered, generate a set of DAILY quests (is_daily: true) for the week: core habits repeated every day
3. Plus 3-5 weekly goals (is_daily: false): the important targets of the week

"""
    + _JSON_CONTRACT
    + "\nBe a mentor."
)

DAY_GREETING = (
    "Hi{{#if player_name}}, {{{player_name}}}{{/if}}! "
    "Let's put together today's quests. A couple of questions first..."
)

WEEK_GREETING = (
    "Hi{{#if player_name}}, {{{player_name}}}{{/if}}! "
    "A new week is the perfect time to plan everything. A few questions..."
)

DEFAULT_PROFILE = "No profile provided. Ask the player about their goals if needed."


@dataclass(frozen=True)
class ModeTemplate:
    title: str
    blurb: str
    instructions: str
    greeting: str


MODE_TEMPLATES: dict[str, ModeTemplate] = {
    "day": ModeTemplate(
        title="Quests for the day",
        blurb="4-6 quests tailored to your day",
        instructions=DAY_INSTRUCTIONS,
        greeting=DAY_GREETING,
    ),
    "week": ModeTemplate(
        title="Plan the week",
        blurb="Daily habits plus goals for the week",
        instructions=WEEK_INSTRUCTIONS,
        greeting=WEEK_GREETING,
    ),
}


@dataclass(frozen=True)
class ModePrompts:
    """Rendered text bound to a session for its whole lifetime."""

    mode: Mode
    instructions: str
    greeting: str


def build_context(profile: str = "", player_name: str = "") -> dict[str, Any]:
    """Assemble template variables shared by every mode template."""
    return {
        "profile": profile.strip() or DEFAULT_PROFILE,
        "player_name": player_name.strip(),
        "stats": [{"code": code, "description": desc} for code, desc in STATS.items()],
        "ranks": [
            {"letter": r, "label": RANK_LABELS[r], "exp": RANK_EXP[r]} for r in RANKS
        ],
    }


def mode_prompts(mode: str, profile: str = "", player_name: str = "") -> ModePrompts:
    """Render the instructions and greeting for one mode."""
    if mode not in MODE_TEMPLATES:
        raise ValueError(f"Unknown mode {mode!r}; expected one of {', '.join(MODES)}")
    template = MODE_TEMPLATES[mode]
    ctx = build_context(profile, player_name)
    return ModePrompts(
        mode=mode,
        instructions=render_prompt(template.instructions, ctx),
        greeting=render_prompt(template.greeting, ctx),
    )
