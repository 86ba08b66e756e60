"""Rule-Based Classifier.

Applies the matchers in a fixed precedence order; the first rule that
fires decides the label.  Reordering the checks changes results, so
the order below is part of the behaviour:

 1. basmala
 2. complete scene header (number + time/place) -> scene-header-top-line
 3. scene-header-1
 4. scene-header-2
 5. transition
    bulleted line that is not ``NAME: TEXT`` -> action
 6. parenthetical, only inside a dialogue exchange
 7. action verb / action opener
 8. scene-header-3 right after a scene heading
 9. dialogue after a cue, or dialogue continuation
10. short line with a colon shaped like a cue -> character
11. short line followed by a long line -> character
12. long punctuated line -> action
13. action
"""

from __future__ import annotations

import logging

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
    ContextWindow,
    Decision,
)
from .normalizer import normalize_line, strip_leading_bullets
from .patterns import (
    is_action_verb_start,
    is_basmala,
    is_character_line,
    is_complete_scene_header,
    is_likely_action,
    is_parenthetical,
    is_scene_header_1,
    is_scene_header_2,
    is_scene_header_3_candidate,
    is_transition,
    parse_inline_character_dialogue,
    split_scene_header,
)

log = logging.getLogger(__name__)

# Confidence tiers.
CONFIDENCE_STRUCTURAL = 0.95
CONFIDENCE_STRONG = 0.85
CONFIDENCE_CONTEXTUAL = 0.80
CONFIDENCE_LONG_ACTION = 0.75
CONFIDENCE_DEFAULT = 0.70
CONFIDENCE_COLON_CHARACTER = 0.60
CONFIDENCE_LIKELY_CHARACTER = 0.50

# A short line is read as a cue only when the next line looks like speech.
_NEXT_LINE_MIN_CHARS = 20


def classify_line(line: str, ctx: ContextWindow) -> Decision:
    """Return the rule-based decision for *line* given its context."""
    last = ctx.last_type
    stats = ctx.stats

    if is_basmala(line):
        return Decision(BASMALA, "basmala", CONFIDENCE_STRUCTURAL)

    if is_complete_scene_header(line) and split_scene_header(line) is not None:
        return Decision(SCENE_HEADER_TOP_LINE, "complete_scene_header", CONFIDENCE_STRUCTURAL)
    if is_scene_header_1(line):
        return Decision(SCENE_HEADER_1, "scene_number", CONFIDENCE_STRUCTURAL)
    if is_scene_header_2(line):
        return Decision(SCENE_HEADER_2, "scene_time_place", CONFIDENCE_STRUCTURAL)
    if is_transition(line):
        return Decision(TRANSITION, "transition", CONFIDENCE_STRUCTURAL)

    # Bullets mark prose lists, not dialogue.
    if stats.starts_with_bullet and parse_inline_character_dialogue(strip_leading_bullets(line)) is None:
        return Decision(ACTION, "bullet_prose", CONFIDENCE_STRONG)

    if is_parenthetical(line) and ctx.pattern.is_in_dialogue_block:
        return Decision(PARENTHETICAL, "parenthetical", CONFIDENCE_STRONG)

    if is_likely_action(line):
        return Decision(ACTION, "action_opener", CONFIDENCE_STRONG)

    if ctx.pattern.is_in_scene_header and is_scene_header_3_candidate(line, last):
        return Decision(SCENE_HEADER_3, "scene_location", CONFIDENCE_CONTEXTUAL)

    if ctx.pattern.is_in_dialogue_block:
        if last in (CHARACTER, PARENTHETICAL):
            if not is_character_line(line, last_label=last, in_dialogue_block=True):
                return Decision(DIALOGUE, "dialogue_after_cue", CONFIDENCE_CONTEXTUAL)
        elif last == DIALOGUE and not stats.has_colon and not is_complete_scene_header(line):
            return Decision(DIALOGUE, "dialogue_continuation", CONFIDENCE_CONTEXTUAL)

    if stats.is_short and stats.has_colon:
        if is_character_line(line, last_label=last, in_dialogue_block=ctx.pattern.is_in_dialogue_block):
            return Decision(CHARACTER, "colon_character", CONFIDENCE_COLON_CHARACTER)

    next_line = ctx.next_line
    if stats.is_short and next_line and len(next_line.strip()) > _NEXT_LINE_MIN_CHARS:
        if _is_likely_character(line, ctx):
            return Decision(CHARACTER, "likely_character", CONFIDENCE_LIKELY_CHARACTER)

    if stats.is_long and stats.has_punctuation:
        return Decision(ACTION, "long_sentence", CONFIDENCE_LONG_ACTION)

    return Decision(ACTION, "default", CONFIDENCE_DEFAULT)


def _is_likely_character(line: str, ctx: ContextWindow) -> bool:
    stats = ctx.stats
    if not stats.is_short or stats.word_count > 5:
        return False
    if is_transition(line) or is_action_verb_start(normalize_line(line)):
        return False
    if stats.has_punctuation and not stats.has_colon:
        return False

    next_line = ctx.next_line
    if next_line and (is_complete_scene_header(next_line) or is_transition(next_line)):
        return False

    # Two cues in a row are never both characters.
    if ctx.pattern.last_character_distance == 0:
        return False
    return True
