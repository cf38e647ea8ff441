"""Quest extraction from raw model replies.

extract() runs three steps, each of which may end the search:
  locate   first ```json ... ``` block in the reply, else None
  parse    json.loads on the block body; malformed JSON gives None
  validate each record against Quest; bad records become ValidationFailure

A block may hold a bare array or an object wrapping it under "quests".
Extraction always runs on the raw reply, never on display text.
"""

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, ValidationError

from quest_generator.models import Quest

logger = logging.getLogger(__name__)

FENCE_OPEN = "```json"

# Opening marker, optional spaces, newline, body, closing marker.
FENCED_BLOCK_RE = re.compile(r"```json[ \t]*\r?\n(.*?)```", re.DOTALL)


class ValidationFailure(BaseModel):
    """A record inside a parsed block that is not a valid quest."""

    index: int
    record: Any
    errors: list[str]


class Extraction(BaseModel):
    """Valid quests and per-record failures recovered from one block."""

    quests: list[Quest]
    failures: list[ValidationFailure] = []


def locate_block(text: str) -> str | None:
    """Return the body of the first fenced JSON block, or None."""
    match = FENCED_BLOCK_RE.search(text)
    return match.group(1) if match else None


def parse_records(block: str) -> list[Any] | None:
    """Parse a block body into a list of raw records, or None if malformed."""
    try:
        data = json.loads(block)
    except json.JSONDecodeError as e:
        logger.warning("Quest block is not valid JSON: %s", e)
        return None
    if isinstance(data, dict) and isinstance(data.get("quests"), list):
        return data["quests"]
    if isinstance(data, list):
        return data
    logger.warning("Quest block must hold a JSON array, got %s", type(data).__name__)
    return None


def _format_errors(e: ValidationError) -> list[str]:
    out: list[str] = []
    for err in e.errors():
        loc = ".".join(str(part) for part in err["loc"])
        out.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return out


def validate_records(records: list[Any]) -> Extraction:
    quests: list[Quest] = []
    failures: list[ValidationFailure] = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            failures.append(ValidationFailure(
                index=index, record=record,
                errors=[f"expected an object, got {type(record).__name__}"],
            ))
            continue
        try:
            quests.append(Quest.model_validate(record))
        except ValidationError as e:
            failures.append(ValidationFailure(
                index=index, record=record, errors=_format_errors(e),
            ))
    return Extraction(quests=quests, failures=failures)


def extract(reply_text: str) -> Extraction | None:
    """Recover quests from a raw reply.

    Returns None when there is no fenced block or it does not parse; that is
    the normal case while the model is still asking questions.
    """
    block = locate_block(reply_text)
    if block is None:
        return None
    records = parse_records(block)
    if records is None:
        return None
    return validate_records(records)
