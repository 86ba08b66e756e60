"""Spacing Rule Engine.

Decides the gap placed above a block from the label of the block before
it.  Three outcomes: ``NO_GAP`` forbids a blank line, ``PARAGRAPH_GAP``
forces one, ``BASE_SPACING`` leaves the renderer's line spacing alone.
"""

from __future__ import annotations

from ..models import (
    ACTION,
    BASMALA,
    CHARACTER,
    DIALOGUE,
    PARENTHETICAL,
    SCENE_HEADER_1,
    SCENE_HEADER_2,
    SCENE_HEADER_3,
    SCENE_HEADER_TOP_LINE,
    TRANSITION,
)

NO_GAP = "0"
PARAGRAPH_GAP = "14pt"
BASE_SPACING = ""

# Spacing of the first block of a batch is computed against this label.
INITIAL_PREVIOUS_LABEL = ACTION

_SPEECH_EXITS = frozenset([CHARACTER, ACTION, TRANSITION])

# previous -> {current: gap}
_RULES: dict[str, dict[str, str]] = {
    CHARACTER: {DIALOGUE: NO_GAP, PARENTHETICAL: NO_GAP},
    PARENTHETICAL: {DIALOGUE: NO_GAP, **{label: PARAGRAPH_GAP for label in _SPEECH_EXITS}},
    SCENE_HEADER_2: {SCENE_HEADER_3: PARAGRAPH_GAP},
    SCENE_HEADER_3: {ACTION: PARAGRAPH_GAP},
    ACTION: {ACTION: PARAGRAPH_GAP, CHARACTER: PARAGRAPH_GAP, TRANSITION: PARAGRAPH_GAP},
    DIALOGUE: {label: PARAGRAPH_GAP for label in _SPEECH_EXITS},
    TRANSITION: {SCENE_HEADER_1: PARAGRAPH_GAP, SCENE_HEADER_TOP_LINE: PARAGRAPH_GAP},
}


def spacing_before(previous: str, current: str) -> str:
    if previous == BASMALA:
        return NO_GAP
    return _RULES.get(previous, {}).get(current, BASE_SPACING)


def has_gap(previous: str, current: str) -> bool:
    return spacing_before(previous, current) == PARAGRAPH_GAP
