"""Spoken command detection for voice turns.

A transcript that opens with a search verb ("search for ...", "look up
...") asks for a web-grounded reply. This is a fixed case-insensitive prefix
match, nothing more.
"""

import logging
import re

logger = logging.getLogger(__name__)

SEARCH_COMMANDS = ("search", "find", "look up", "google")

# Leading filler the recogniser often keeps, e.g. "Okay, search for ..."
_SEARCH_PATTERN = re.compile(
    r"^\s*(?:(?:ok|okay|hey|please)[,\s]+)?(?:"
    + "|".join(r"\s+".join(map(re.escape, c.split())) for c in SEARCH_COMMANDS)
    + r")\b",
    re.IGNORECASE,
)


def detect_search_intent(transcript: str) -> bool:
    """Return True when the transcript starts with a search command."""
    if not transcript:
        return False
    matched = _SEARCH_PATTERN.match(transcript) is not None
    if matched:
        logger.debug("Search intent detected: %s", transcript[:50])
    return matched
