"""Presentation text for assistant messages."""

import re

from .extractors import FENCE_OPEN, FENCED_BLOCK_RE

# An opening marker with no closing one swallows the rest of the reply.
_UNTERMINATED_RE = re.compile(re.escape(FENCE_OPEN) + r".*\Z", re.DOTALL)


def display_text(raw: str) -> str:
    """Return the reply without its quest blocks, trimmed.

    Purely presentational: extraction never sees this text.
    """
    text = FENCED_BLOCK_RE.sub("", raw)
    text = _UNTERMINATED_RE.sub("", text)
    return text.strip()
