"""Quest list export as indented JSON text (e.g. for the clipboard)."""

import json

from pydantic import TypeAdapter

from quest_generator.models import Quest

_QUEST_LIST = TypeAdapter(list[Quest])


def dump_quests(quests: list[Quest]) -> str:
    """Serialise quests as a JSON array indented by two spaces."""
    return json.dumps(
        [q.model_dump() for q in quests], indent=2, ensure_ascii=False
    )


def load_quests(text: str) -> list[Quest]:
    """Parse text produced by dump_quests back into quests.

    Raises pydantic.ValidationError on malformed input.
    """
    return _QUEST_LIST.validate_json(text)
