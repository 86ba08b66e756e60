"""Memory-Augmented Adjuster.

Revisits the rule-based decision using what the session has learned:
known character names and the label n-grams of the previous batches.
Overrides are applied in order, so a later one can undo an earlier one.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from ..models import (
    ACTION,
    CHARACTER,
    DIALOGUE,
    ContextMemory,
    ContextWindow,
    Decision,
)
from .normalizer import normalize_line
from .patterns import is_complete_scene_header, is_likely_action

log = logging.getLogger(__name__)

CONFIDENCE_KNOWN_CHARACTER = 0.85
CONFIDENCE_PATTERN = 0.80
CONFIDENCE_FREQUENT_CHARACTER = 0.95

# A name seen this many times is treated as an established cue.
FREQUENT_CHARACTER_MIN = 3

_COLONS_RE = re.compile(r"[:：]")


def adjust_with_memory(
    line: str,
    ctx: ContextWindow,
    decision: Decision,
    memory: Optional[ContextMemory],
) -> Decision:
    """Return *decision* revised against *memory* (unchanged without memory)."""
    if memory is None:
        return decision

    stats = ctx.stats
    last = ctx.last_type

    if stats.is_short and not stats.has_punctuation:
        known = _find_known_character(line, memory.common_characters)
        if known and stats.word_count <= 3 and len(line) < 40:
            decision = Decision(CHARACTER, "memory_known_character", CONFIDENCE_KNOWN_CHARACTER)
            log.debug("Memory: %r matches known character %r", line, known)

    recent = "-".join(memory.last_classifications[:3])

    if (recent.startswith(f"{CHARACTER}-{DIALOGUE}")
            and last == DIALOGUE
            and not stats.has_colon
            and is_likely_action(line)):
        decision = Decision(ACTION, "memory_break_dialogue", CONFIDENCE_PATTERN)

    if (recent == f"{DIALOGUE}-{DIALOGUE}-{DIALOGUE}"
            and last == DIALOGUE
            and not stats.has_colon
            and not is_complete_scene_header(line)):
        decision = Decision(DIALOGUE, "memory_monologue", CONFIDENCE_PATTERN)

    if recent == f"{ACTION}-{ACTION}-{ACTION}" and last == ACTION and stats.is_long:
        decision = Decision(ACTION, "memory_action_run", CONFIDENCE_PATTERN)

    if decision.label == CHARACTER:
        name = _COLONS_RE.sub("", line).strip()
        if memory.character_dialogue_map.get(name, 0) >= FREQUENT_CHARACTER_MIN:
            decision = Decision(CHARACTER, decision.rule, max(decision.confidence, CONFIDENCE_FREQUENT_CHARACTER))

    return decision


def _find_known_character(line: str, characters: list[str]) -> Optional[str]:
    candidate = _COLONS_RE.sub("", normalize_line(line)).strip().lower()
    if not candidate:
        return None
    for name in characters:
        known = name.lower()
        if known and (known in candidate or candidate in known):
            return name
    return None
