"""Clarifying dialog → quest list pipeline.

One session runs the loop below for every user action:
  1. Append the user message (the mode greeting on start) and a pending
     assistant placeholder.
  2. Call the Dialog Engine with the mode's instructions and the
     conversation so far, placeholder excluded.
  3. Replace the placeholder with the reply, or with a fallback message if
     the call failed.
  4. Run the extractor on the raw reply. At least one valid quest replaces
     the quest list and moves the phase to "generated"; malformed records
     are kept as validation failures.

Reply format (parsed by extract):
  Free-form text, optionally ending with
  ```json
  [{"name": ..., "description": ..., "rank": "D", "stats": ["STA"], "is_daily": false}]
  ```

display_text() strips that block for presentation only.
"""

from .display import display_text  # noqa: F401
from .extractors import (  # noqa: F401
    Extraction,
    ValidationFailure,
    extract,
)
from .session import (  # noqa: F401
    FALLBACK_REPLY,
    InvalidInputError,
    NoSessionError,
    SessionBusyError,
    SessionError,
    SessionManager,
    SessionSnapshot,
)
