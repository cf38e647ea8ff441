"""Core domain models.

Every pipeline stage operates on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Role = Literal["user", "assistant"]
Mode = Literal["day", "week"]
Phase = Literal["questions", "generated"]
Rank = Literal["E", "D", "C", "B", "A", "S"]

MODES: tuple[Mode, ...] = ("day", "week")
RANKS: tuple[Rank, ...] = ("E", "D", "C", "B", "A", "S")

RANK_EXP: dict[str, int] = {"E": 20, "D": 40, "C": 70, "B": 120, "A": 200, "S": 350}
RANK_LABELS: dict[str, str] = {
    "E": "very easy",
    "D": "easy",
    "C": "medium",
    "B": "hard",
    "A": "very hard",
    "S": "epic",
}

# Canonical stats. Quests may carry others; they are kept verbatim.
STATS: dict[str, str] = {
    "STR": "Strength: physical activity",
    "AGI": "Agility: reflexes, games, coordination",
    "INT": "Intellect: study, programming, chess",
    "STA": "Stamina: health, sleep schedule, endurance",
}

PLACEHOLDER_TEXT = "..."


class Message(BaseModel):
    """One entry in a session's append-only conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    pending: bool = False  # transient placeholder while a reply is awaited


def placeholder() -> Message:
    return Message(role="assistant", content=PLACEHOLDER_TEXT, pending=True)


class Quest(BaseModel):
    """A gamified task recovered from a model reply."""

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    rank: Rank
    stats: list[str] = Field(min_length=1)
    is_daily: bool

    @model_validator(mode="before")
    @classmethod
    def _legacy_stat(cls, data: Any) -> Any:
        # Older replies carry a single "stat" instead of "stats"
        if isinstance(data, dict) and "stats" not in data and "stat" in data:
            data = {k: v for k, v in data.items() if k != "stat"} | {"stats": data["stat"]}
        return data

    @field_validator("name", "description", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("rank", mode="before")
    @classmethod
    def _normalise_rank(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("stats", mode="before")
    @classmethod
    def _normalise_stats(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple, set)):
            return value
        seen: list[str] = []
        for item in value:
            if not isinstance(item, str):
                return value  # let pydantic report the bad element
            stat = item.strip()
            if stat.upper() in STATS:
                stat = stat.upper()
            if stat and stat not in seen:
                seen.append(stat)
        return seen

    @property
    def exp(self) -> int:
        return RANK_EXP[self.rank]
