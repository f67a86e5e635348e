"""Maps a final transcript to a search query.

A transcript containing a trigger phrase has every command phrase removed
("search for cats" -> "cats"); any other transcript is searched as spoken.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

TRIGGER_PHRASES: tuple[str, ...] = ("search", "google", "find", "look up")

# "search for" goes before "search" so no dangling "for" is left behind.
_STRIP_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(re.escape(phrase), re.IGNORECASE)
    for phrase in ("search for", "search", "google", "find", "look up")
)


class CommandInterpreter:
    """Extracts the search query from spoken text."""

    def interpret(self, transcript: str) -> str | None:
        """Return the query for *transcript*, or None when nothing is left."""
        lowered = transcript.lower()
        if any(phrase in lowered for phrase in TRIGGER_PHRASES):
            query = self._strip_commands(transcript).strip()
        else:
            query = transcript.strip()

        if not query:
            logger.debug("Transcript %r has no query", transcript)
            return None
        return query

    @staticmethod
    def _strip_commands(text: str) -> str:
        # Repeat until stable: removing one phrase can join the halves of another.
        previous = None
        while previous != text:
            previous = text
            for pattern in _STRIP_PATTERNS:
                text = pattern.sub("", text)
        return text
