"""Word lists used by the pattern matchers.

Each lexicon lives in ``data/<name>.txt`` (one entry per line, ``#``
comments allowed) and is loaded once into a frozenset on first use.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

log = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).resolve().parent.parent / "data"

ACTION_VERBS = "action_verbs"
NARRATOR_VERBS = "narrator_verbs"
NARRATOR_PAST_VERBS = "narrator_past_verbs"
CHARACTER_STOP_WORDS = "character_stop_words"
TRANSITION_CUES = "transition_cues"
TIME_CUES = "time_cues"
INTERIOR_CUES = "interior_cues"
KNOWN_PLACES = "known_places"
QUALIFIED_PLACES = "qualified_places"

# Module-level cache.
_LEXICONS: dict[str, frozenset[str]] = {}


def _load_lexicon(name: str) -> frozenset[str]:
    path = _DATA_DIR / f"{name}.txt"
    entries: set[str] = set()
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            entries.add(line)
    log.debug("Loaded lexicon %s (%d entries)", name, len(entries))
    return frozenset(entries)


def get_lexicon(name: str) -> frozenset[str]:
    lexicon = _LEXICONS.get(name)
    if lexicon is None:
        lexicon = _load_lexicon(name)
        _LEXICONS[name] = lexicon
    return lexicon


def alternation(name: str) -> str:
    """Regex alternation of a lexicon, longest entries first."""
    words = sorted(get_lexicon(name), key=len, reverse=True)
    return "|".join(re.escape(w) for w in words)
